"""Aggregate figures for the government dashboard.

Everything is computed from plain filtered reads merged in Python: user
counts, verified weights from drop and transfer items, a month-by-month trend
table, the top industry offtakers and the largest waste banks by a composite
of storage volume and processed weight.
"""
import logging
import re
from collections import defaultdict
from dataclasses import dataclass
from datetime import tzinfo
from typing import Dict, Iterable, List, Optional

from bson import ObjectId
from pymongo.errors import PyMongoError

from ..dates import month_bounds, month_key, month_range, parse_month
from ..enums import WASTE_BANK_ROLES, TransferFormType, UserRole, WasteTransferStatus
from ..errors import AppError, BadRequestError, InternalError
from ..repository import (
    StorageRepository,
    UserRepository,
    WasteDropRequestItemRepository,
    WasteDropRequestRepository,
    WasteTransferItemRepository,
    WasteTransferRequestRepository,
)
from ..schemas import CollectionTrend, GovernmentDashboardResponse, LargestBank, TopOfftaker

logger = logging.getLogger(__name__)

TOP_LIMIT = 3
WEIGHT_FACTOR = 0.3
VOLUME_FACTOR = 0.7
TREND_ROLES = (UserRole.WASTE_BANK_UNIT.value, UserRole.WASTE_BANK_CENTRAL.value, UserRole.INDUSTRY.value)
BANK_ROLE_VALUES = [role.value for role in WASTE_BANK_ROLES]


@dataclass
class BankScore:
    user: dict
    volume: float
    total_weight: float

    @property
    def score(self) -> float:
        return self.total_weight * WEIGHT_FACTOR + self.volume * VOLUME_FACTOR


def display_name(user: Optional[dict]) -> str:
    if not user or not user.get("username"):
        return "Unknown"
    return user["username"]


def rank_largest_banks(candidates: Iterable[BankScore], limit: int = TOP_LIMIT) -> List[BankScore]:
    """Highest composite score first, then volume, then weight; idle banks are dropped."""
    active = [bank for bank in candidates if bank.volume > 0 or bank.total_weight > 0]
    active.sort(key=lambda bank: (bank.score, bank.volume, bank.total_weight), reverse=True)
    return active[:limit]


def merge_role_weights(*sources: Dict[str, Dict[str, float]]) -> Dict[str, Dict[str, float]]:
    """Sum ``{month: {role: weight}}`` maps key by key."""
    merged: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
    for source in sources:
        for month, roles in source.items():
            for role, weight in roles.items():
                merged[month][role] += weight
    return merged


def build_trends(
    months: List[str],
    role_weights: Dict[str, Dict[str, float]],
    drop_weights: Dict[str, float],
    transfer_weights: Dict[str, float],
) -> List[CollectionTrend]:
    trends = []
    for month in months:
        roles = role_weights.get(month, {})
        trends.append(
            CollectionTrend(
                month=month,
                waste_bank_unit=roles.get(UserRole.WASTE_BANK_UNIT.value, 0.0),
                waste_bank_central=roles.get(UserRole.WASTE_BANK_CENTRAL.value, 0.0),
                industry=roles.get(UserRole.INDUSTRY.value, 0.0),
                collection_requests_weight=drop_weights.get(month, 0.0),
                transfer_requests_weight=transfer_weights.get(month, 0.0),
            )
        )
    return trends


class GovernmentDashboardService:
    def __init__(self, db, tz: tzinfo):
        self.tz = tz
        self.users = UserRepository(db)
        self.storages = StorageRepository(db)
        self.drop_requests = WasteDropRequestRepository(db)
        self.drop_items = WasteDropRequestItemRepository(db)
        self.transfer_requests = WasteTransferRequestRepository(db)
        self.transfer_items = WasteTransferItemRepository(db)

    async def dashboard(
        self, start_month: str, end_month: str, province: Optional[str] = None, city: Optional[str] = None
    ) -> GovernmentDashboardResponse:
        start = parse_month(start_month, "start_month")
        end = parse_month(end_month, "end_month")
        if end < start:
            raise BadRequestError("end_month must not be before start_month")

        try:
            return await self._build(start, end, province, city)
        except AppError:
            raise
        except (PyMongoError, ValueError, KeyError, TypeError) as exc:
            message = str(exc)
            if "invalid" in message.lower() or "format" in message.lower():
                raise BadRequestError(message) from exc
            logger.exception("Failed to build government dashboard")
            raise InternalError("Failed to retrieve dashboard data") from exc

    async def _build(self, start, end, province: Optional[str], city: Optional[str]) -> GovernmentDashboardResponse:
        lower, upper = month_bounds(start, end, self.tz)
        months = [month.strftime("%Y-%m") for month in month_range(start, end)]
        geo = self._geo_filter(province, city)
        in_range = {"created_at": {"$gte": lower, "$lte": upper}}

        total_banks = await self.users.count(
            {"role": {"$in": BANK_ROLE_VALUES}, "created_at": {"$lte": upper}, **geo}
        )
        total_offtakers = await self.users.count(
            {"role": UserRole.INDUSTRY.value, "created_at": {"$lte": upper}, **geo}
        )

        # Drop side: verified item weight attributed to the receiving waste bank
        drop_requests = await self.drop_requests.find_many({"waste_bank_id": {"$ne": None}, **in_range})
        drop_owners = await self._users_matching([doc["waste_bank_id"] for doc in drop_requests], geo)
        drop_requests = [doc for doc in drop_requests if doc["waste_bank_id"] in drop_owners]
        drop_item_weights = await self._verified_weights(
            self.drop_items, "request_id", [doc["_id"] for doc in drop_requests]
        )

        # Transfer side: verified item weight attributed to the destination
        transfer_requests = await self.transfer_requests.find_many(in_range)
        transfer_owners = await self._users_matching([doc["destination_user_id"] for doc in transfer_requests], geo)
        transfer_requests = [doc for doc in transfer_requests if doc["destination_user_id"] in transfer_owners]
        transfer_item_weights = await self._verified_weights(
            self.transfer_items, "transfer_request_id", [doc["_id"] for doc in transfer_requests]
        )

        drop_roles: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
        drop_by_month: Dict[str, float] = defaultdict(float)
        for doc in drop_requests:
            weight = drop_item_weights.get(doc["_id"], 0.0)
            month = month_key(doc["created_at"], self.tz)
            role = drop_owners[doc["waste_bank_id"]].get("role")
            if role in TREND_ROLES:
                drop_roles[month][role] += weight
            drop_by_month[month] += weight

        transfer_roles: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
        transfer_by_month: Dict[str, float] = defaultdict(float)
        for doc in transfer_requests:
            weight = transfer_item_weights.get(doc["_id"], 0.0)
            month = month_key(doc["created_at"], self.tz)
            role = transfer_owners[doc["destination_user_id"]].get("role")
            if role in TREND_ROLES:
                transfer_roles[month][role] += weight
            transfer_by_month[month] += weight

        total_collected = sum(drop_item_weights.values()) + sum(transfer_item_weights.values())
        trends = build_trends(
            months, merge_role_weights(drop_roles, transfer_roles), drop_by_month, transfer_by_month
        )

        dashboard = GovernmentDashboardResponse(
            total_bank_sampah=total_banks,
            total_offtaker=total_offtakers,
            total_collected=total_collected,
            collection_trends=trends,
            top_offtakers=self._top_offtakers(transfer_requests, transfer_owners),
            largest_banks=await self._largest_banks(geo, drop_requests, drop_item_weights, transfer_requests),
        )
        logger.info(
            "Dashboard %s..%s: %d banks, %d offtakers, %.2f kg collected",
            months[0], months[-1], total_banks, total_offtakers, total_collected,
        )
        return dashboard

    @staticmethod
    def _geo_filter(province: Optional[str], city: Optional[str]) -> dict:
        geo = {}
        if province:
            geo["province"] = {"$regex": re.escape(province), "$options": "i"}
        if city:
            geo["city"] = {"$regex": re.escape(city), "$options": "i"}
        return geo

    async def _users_matching(self, user_ids: List[ObjectId], geo: dict) -> Dict[ObjectId, dict]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        users = await self.users.find_many({"_id": {"$in": ids}, **geo})
        return {user["_id"]: user for user in users}

    @staticmethod
    async def _verified_weights(repo, parent_field: str, parent_ids: List[ObjectId]) -> Dict[ObjectId, float]:
        """Sum of item verified weight per parent request."""
        if not parent_ids:
            return {}
        items = await repo.find_many({parent_field: {"$in": parent_ids}})
        totals: Dict[ObjectId, float] = defaultdict(float)
        for item in items:
            totals[item[parent_field]] += item.get("verified_weight") or 0.0
        return totals

    @staticmethod
    def _top_offtakers(transfer_requests: List[dict], owners: Dict[ObjectId, dict]) -> List[TopOfftaker]:
        totals: Dict[ObjectId, List[float]] = defaultdict(lambda: [0.0, 0])
        for doc in transfer_requests:
            if doc.get("form_type") != TransferFormType.INDUSTRY_REQUEST.value:
                continue
            if doc.get("status") != WasteTransferStatus.COMPLETED.value:
                continue
            destination = owners.get(doc["destination_user_id"])
            if not destination or destination.get("role") != UserRole.INDUSTRY.value:
                continue
            totals[doc["destination_user_id"]][0] += doc.get("total_weight") or 0.0
            totals[doc["destination_user_id"]][1] += doc.get("total_price") or 0

        ranked = sorted(totals.items(), key=lambda entry: (entry[1][0], entry[1][1]), reverse=True)
        result = []
        for user_id, (weight, price) in ranked[:TOP_LIMIT]:
            user = owners[user_id]
            result.append(
                TopOfftaker(
                    id=str(user_id),
                    name=display_name(user),
                    institution=user.get("institution"),
                    city=user.get("city"),
                    province=user.get("province"),
                    total_weight=weight,
                    total_price=int(price),
                )
            )
        return result

    async def _largest_banks(
        self,
        geo: dict,
        drop_requests: List[dict],
        drop_item_weights: Dict[ObjectId, float],
        transfer_requests: List[dict],
    ) -> List[LargestBank]:
        banks = await self.users.find_many({"role": {"$in": BANK_ROLE_VALUES}, **geo})
        if not banks:
            return []
        bank_ids = [bank["_id"] for bank in banks]

        volumes: Dict[ObjectId, float] = defaultdict(float)
        for storage in await self.storages.find_many({"user_id": {"$in": bank_ids}}):
            volumes[storage["user_id"]] += storage["length"] * storage["width"] * storage["height"]

        weights: Dict[ObjectId, float] = defaultdict(float)
        for doc in drop_requests:
            weights[doc["waste_bank_id"]] += drop_item_weights.get(doc["_id"], 0.0)
        for doc in transfer_requests:
            if (
                doc.get("form_type") == TransferFormType.WASTE_BANK_REQUEST.value
                and doc.get("status") == WasteTransferStatus.COMPLETED.value
            ):
                weights[doc["destination_user_id"]] += doc.get("total_weight") or 0.0

        ranked = rank_largest_banks(
            BankScore(user=bank, volume=volumes.get(bank["_id"], 0.0), total_weight=weights.get(bank["_id"], 0.0))
            for bank in banks
        )
        return [
            LargestBank(
                id=str(entry.user["_id"]),
                name=display_name(entry.user),
                institution=entry.user.get("institution"),
                city=entry.user.get("city"),
                province=entry.user.get("province"),
                total_weight=entry.total_weight,
                volume=entry.volume,
            )
            for entry in ranked
        ]
