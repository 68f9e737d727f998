"""Bulk transfers from a waste bank to another bank or to an industry offtaker.

Lifecycle::

    pending -> assigned -> collecting -> completed
    any non-terminal state -> cancelled

Each line item moves through three weights: offered by the source, accepted
by the destination when a collector is assigned, and verified on delivery.
"""
import logging
from collections import defaultdict
from datetime import tzinfo
from typing import List, Optional, Tuple

from bson import ObjectId

from ..database import transaction
from ..dates import parse_appointment
from ..enums import TERMINAL_STATUSES, WasteTransferStatus
from ..errors import BadRequestError, NotFoundError
from ..models import GeoPoint, WasteTransferItemOffering, WasteTransferRequest
from ..repository import UserRepository, WasteTransferItemRepository, WasteTransferRequestRepository
from ..schemas import (
    AssignCollectorByWasteTypeRequest,
    CompleteRequest,
    WasteTransferRequestCreate,
    WasteTransferRequestUpdate,
)
from ..utils import distance_to, parse_object_id, parse_optional_object_id, sort_by_distance
from .catalog import CatalogService
from .profiles import ProfileService
from .storage import StorageService

logger = logging.getLogger(__name__)

TRANSFER_STATUSES = {status.value for status in WasteTransferStatus}
# Statuses a participant may set directly; the rest have dedicated operations
WRITABLE_STATUSES = (WasteTransferStatus.COLLECTING.value, WasteTransferStatus.CANCELLED.value)
COMPLETABLE_STATUSES = (WasteTransferStatus.ASSIGNED.value, WasteTransferStatus.COLLECTING.value)


class WasteTransferRequestService:
    def __init__(self, db, tz: tzinfo):
        self.tz = tz
        self.users = UserRepository(db)
        self.requests = WasteTransferRequestRepository(db)
        self.items = WasteTransferItemRepository(db)
        self.catalog = CatalogService(db)
        self.storage = StorageService(db)
        self.profiles = ProfileService(db)

    async def _require_request(self, request_id: ObjectId, session=None) -> dict:
        doc = await self.requests.find_by_id(request_id, session=session)
        if not doc:
            raise NotFoundError("Waste transfer request not found")
        return doc

    async def _require_user(self, user_id: ObjectId, label: str, session=None) -> dict:
        user = await self.users.find_by_id(user_id, session=session)
        if not user:
            raise NotFoundError(f"{label} not found")
        return user

    async def _items_of(self, request_id: ObjectId, session=None) -> List[dict]:
        return await self.items.find_many(
            {"transfer_request_id": request_id}, sort=[("created_at", 1)], session=session
        )

    async def create(self, source_user_id: ObjectId, request: WasteTransferRequestCreate) -> dict:
        offers = request.items
        if not len(offers.waste_type_ids) == len(offers.offering_weights) == len(offers.offering_prices_per_kgs):
            raise BadRequestError("waste_type_ids, offering_weights and offering_prices_per_kgs must have the same length")
        if any(value < 0 for value in offers.offering_weights + offers.offering_prices_per_kgs):
            raise BadRequestError("Offering weights and prices must be non-negative")
        waste_type_ids = [parse_object_id(value, "waste_type_id") for value in offers.waste_type_ids]
        destination_id = parse_object_id(request.destination_user_id, "destination_user_id")
        appointment_date, start_time, end_time = parse_appointment(
            request.appointment_date,
            request.appointment_start_time,
            request.appointment_end_time,
            self.tz,
        )

        async with transaction() as session:
            await self._require_user(source_user_id, "Source user", session)
            await self._require_user(destination_id, "Destination user", session)
            await self.catalog.require_waste_types(waste_type_ids, session=session)

            total_weight = sum(offers.offering_weights)
            total_price = sum(
                int(weight) * price for weight, price in zip(offers.offering_weights, offers.offering_prices_per_kgs)
            )
            location = request.appointment_location
            transfer = WasteTransferRequest(
                source_user_id=source_user_id,
                destination_user_id=destination_id,
                form_type=request.form_type,
                total_weight=total_weight,
                total_price=int(total_price),
                status=WasteTransferStatus.PENDING.value,
                image_url=request.image_url,
                notes=request.notes,
                source_phone_number=request.source_phone_number,
                destination_phone_number=request.destination_phone_number,
                appointment_location=(
                    GeoPoint.from_lat_lng(location.latitude, location.longitude) if location else None
                ),
                appointment_date=appointment_date,
                appointment_start_time=start_time,
                appointment_end_time=end_time,
            )
            doc = await self.requests.insert(transfer.to_mongo(), session=session)

            items = [
                WasteTransferItemOffering(
                    transfer_request_id=doc["_id"],
                    waste_type_id=waste_type_id,
                    offering_weight=weight,
                    offering_price_per_kgs=price,
                ).to_mongo()
                for waste_type_id, weight, price in zip(
                    waste_type_ids, offers.offering_weights, offers.offering_prices_per_kgs
                )
            ]
            await self.items.insert_many(items, session=session)

        logger.info("Waste transfer request %s created from %s to %s", doc["_id"], source_user_id, destination_id)
        return doc

    async def get(
        self, request_id: ObjectId, latitude: Optional[float] = None, longitude: Optional[float] = None
    ) -> Tuple[dict, Optional[float], List[dict]]:
        doc = await self._require_request(request_id)
        items = await self._items_of(request_id)
        return doc, distance_to(doc.get("appointment_location"), latitude, longitude), items

    async def search(
        self,
        page: int,
        size: int,
        source_user_id: Optional[ObjectId] = None,
        destination_user_id: Optional[ObjectId] = None,
        form_type: Optional[str] = None,
        status: Optional[str] = None,
        appointment_date: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> Tuple[List[Tuple[dict, Optional[float]]], int]:
        filters = {}
        if source_user_id:
            filters["source_user_id"] = source_user_id
        if destination_user_id:
            filters["destination_user_id"] = destination_user_id
        if form_type:
            filters["form_type"] = form_type
        if status:
            filters["status"] = status
        if appointment_date:
            filters["appointment_date"] = appointment_date

        if latitude is None or longitude is None:
            docs, total = await self.requests.search(filters, page, size, sort=[("created_at", -1)])
            return [(doc, None) for doc in docs], total

        # $geoNear would drop documents without a location, which must still be listed last
        docs = await self.requests.find_many(filters)
        distances = {
            doc["_id"]: distance_to(doc.get("appointment_location"), latitude, longitude) for doc in docs
        }
        start = (page - 1) * size
        page_docs = sort_by_distance(docs, distances)[start:start + size]
        return [(doc, distances[doc["_id"]]) for doc in page_docs], len(docs)

    async def assign_collector_by_waste_type(
        self, request_id: ObjectId, request: AssignCollectorByWasteTypeRequest
    ) -> dict:
        """Record what the destination accepts per waste type and move to ``assigned``.

        The collector is optional since some offtakers collect by themselves.
        """
        collector_id = parse_optional_object_id(request.assigned_collector_id, "assigned_collector_id")
        pricing = {}
        for entry in request.waste_types:
            if entry.accepted_weight < 0 or entry.accepted_price_per_kgs < 0:
                raise BadRequestError("Weight and price must be non-negative")
            pricing[parse_object_id(entry.waste_type_id, "waste_type_id")] = entry

        async with transaction() as session:
            if collector_id:
                await self._require_user(collector_id, "Waste collector", session)
            doc = await self._require_request(request_id, session)
            if doc["status"] != WasteTransferStatus.PENDING.value:
                raise BadRequestError("Can only assign collector to pending requests")

            items = await self._items_of(request_id, session)
            if not items:
                raise BadRequestError("No items found for this transfer request")

            total_weight = 0.0
            total_price = 0
            for item in items:
                entry = pricing.get(item["waste_type_id"])
                if entry is None:
                    raise BadRequestError(f"Missing pricing for waste type {item['waste_type_id']}")
                if entry.accepted_weight > item["offering_weight"]:
                    raise BadRequestError(
                        f"Accepted weight ({entry.accepted_weight:.2f}) cannot exceed offered weight "
                        f"({item['offering_weight']:.2f}) for waste type {item['waste_type_id']}"
                    )
                total_weight += entry.accepted_weight
                total_price += int(round(entry.accepted_weight) * entry.accepted_price_per_kgs)

            for item in items:
                entry = pricing[item["waste_type_id"]]
                await self.items.update(
                    item["_id"],
                    {
                        "accepted_weight": entry.accepted_weight,
                        "accepted_price_per_kgs": entry.accepted_price_per_kgs,
                    },
                    session=session,
                )

            await self.requests.update(
                request_id,
                {
                    "assigned_collector_id": collector_id,
                    "status": WasteTransferStatus.ASSIGNED.value,
                    "total_weight": total_weight,
                    "total_price": total_price,
                },
                session=session,
            )
            logger.info("Waste transfer request %s assigned", request_id)
            return await self.requests.find_by_id(request_id, session=session)

    async def update_status(self, request_id: ObjectId, status: str) -> dict:
        if status not in WRITABLE_STATUSES:
            raise BadRequestError("only collecting and cancelled status are allowed")

        async with transaction() as session:
            doc = await self._require_request(request_id, session)
            if doc["status"] in TERMINAL_STATUSES:
                raise BadRequestError(f"Waste transfer request is already {doc['status']}")
            await self.requests.update(request_id, {"status": status}, session=session)
            logger.info("Waste transfer request %s moved from %s to %s", request_id, doc["status"], status)
            return await self.requests.find_by_id(request_id, session=session)

    async def update(self, request_id: ObjectId, request: WasteTransferRequestUpdate) -> dict:
        if request.status and request.status not in TRANSFER_STATUSES:
            raise BadRequestError(f"Invalid status: {request.status}")

        async with transaction() as session:
            doc = await self._require_request(request_id, session)
            fields = {}
            if request.form_type:
                fields["form_type"] = request.form_type.value
            if request.status:
                fields["status"] = request.status
            if request.appointment_date or request.appointment_start_time or request.appointment_end_time:
                day, start, end = parse_appointment(
                    request.appointment_date or doc.get("appointment_date"),
                    request.appointment_start_time,
                    request.appointment_end_time,
                    self.tz,
                )
                fields["appointment_date"] = day
                if start:
                    fields["appointment_start_time"] = start
                if end:
                    fields["appointment_end_time"] = end
            if fields:
                await self.requests.update(request_id, fields, session=session)
            return await self.requests.find_by_id(request_id, session=session)

    async def complete(self, request_id: ObjectId, request: CompleteRequest) -> dict:
        """Record verified weights, settle totals and move stock between storages."""
        if len(request.items.waste_type_ids) != len(request.items.weights):
            raise BadRequestError("waste_type_ids and weights must have the same length")
        for index, weight in enumerate(request.items.weights):
            if weight < 0:
                raise BadRequestError(f"Weight at index {index} must be non-negative")
        weights = {
            parse_object_id(value, "waste_type_id"): weight
            for value, weight in zip(request.items.waste_type_ids, request.items.weights)
        }

        async with transaction() as session:
            doc = await self._require_request(request_id, session)
            if doc["status"] not in COMPLETABLE_STATUSES:
                raise BadRequestError("Can only complete assigned or collecting requests")

            items = await self._items_of(request_id, session)
            if not items:
                raise BadRequestError("No items found for this transfer request")

            verified = []
            for item in items:
                if item["waste_type_id"] not in weights:
                    continue
                weight = weights[item["waste_type_id"]]
                accepted = item.get("accepted_weight", 0)
                if accepted > 0 and weight > accepted:
                    raise BadRequestError(
                        f"Verified weight ({weight:.2f}) cannot exceed accepted weight "
                        f"({accepted:.2f}) for waste type {item['waste_type_id']}"
                    )
                verified.append((item, weight))
            if len(verified) != len(request.items.waste_type_ids):
                raise BadRequestError("Some waste types not found in this transfer request")

            # Source stock must cover every accepted weight before anything is written
            source_storage = await self.storage.find_raw_material_storage(doc["source_user_id"], session=session)
            outgoing = defaultdict(float)
            for item in items:
                outgoing[item["waste_type_id"]] += item.get("accepted_weight", 0)
            for waste_type_id, weight in outgoing.items():
                await self.storage.ensure_stock(source_storage, waste_type_id, weight, session=session)

            total_weight = 0.0
            total_price = 0
            for item, weight in verified:
                price = item.get("accepted_price_per_kgs") or item.get("offering_price_per_kgs", 0)
                await self.items.update(item["_id"], {"verified_weight": weight}, session=session)
                total_weight += weight
                total_price += int(price * weight)

            for waste_type_id, weight in outgoing.items():
                await self.storage.remove_stock(source_storage, waste_type_id, weight, session=session)
            destination_storage = await self.storage.raw_material_storage(
                doc["destination_user_id"], session=session
            )
            for item, weight in verified:
                await self.storage.add_stock(destination_storage["_id"], item["waste_type_id"], weight, session=session)
            destination = await self._require_user(doc["destination_user_id"], "Destination user", session)
            await self.profiles.record_transfer(destination, total_weight, session=session)

            await self.requests.update(
                request_id,
                {
                    "status": WasteTransferStatus.COMPLETED.value,
                    "total_weight": total_weight,
                    "total_price": total_price,
                },
                session=session,
            )
            logger.info("Waste transfer request %s completed with %.2f kg verified", request_id, total_weight)
            return await self.requests.find_by_id(request_id, session=session)

    async def delete(self, request_id: ObjectId) -> None:
        async with transaction() as session:
            await self._require_request(request_id, session)
            await self.items.update_many({"transfer_request_id": request_id}, {"is_deleted": True}, session=session)
            await self.requests.soft_delete(request_id, session=session)

    # Item offerings

    async def get_item(self, item_id: ObjectId) -> dict:
        item = await self.items.find_by_id(item_id)
        if not item:
            raise NotFoundError("Waste transfer item offering not found")
        return item

    async def search_items(
        self, page: int, size: int, transfer_request_id: Optional[ObjectId] = None
    ) -> Tuple[List[dict], int]:
        filters = {"transfer_request_id": transfer_request_id} if transfer_request_id else {}
        return await self.items.search(filters, page, size, sort=[("created_at", 1)])
