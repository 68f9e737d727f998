"""Per-role profiles holding a user's running totals.

A profile is opened when the user registers and is kept in step by request
completions: customers accumulate environmental impact figures, collectors,
waste banks and industries the verified weight they handled. Completions
that find no profile create one on the fly.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Type

from bson import ObjectId
from pydantic import BaseModel

from .. import schemas
from ..enums import COLLECTOR_ROLES, WASTE_BANK_ROLES, UserRole
from ..errors import NotFoundError
from ..models import CustomerProfile, Document, IndustryProfile, WasteBankProfile, WasteCollectorProfile
from ..repository import (
    CustomerProfileRepository,
    IndustryProfileRepository,
    Repository,
    UserRepository,
    WasteBankProfileRepository,
    WasteCollectorProfileRepository,
)

logger = logging.getLogger(__name__)

# Environmental impact of one verified kilogram of dropped waste
CARBON_PER_KG = 2.5
WATER_LITRES_PER_KG = 1000
KG_PER_TREE = 10


@dataclass(frozen=True)
class ProfileKind:
    label: str
    roles: Tuple[UserRole, ...]
    model: Type[Document]
    repository: Type[Repository]
    response: Type[BaseModel]
    update: Type[BaseModel]

    def accepts(self, role: str) -> bool:
        return role in {r.value for r in self.roles}


CUSTOMER = ProfileKind(
    "Customer",
    (UserRole.CUSTOMER,),
    CustomerProfile,
    CustomerProfileRepository,
    schemas.CustomerProfileResponse,
    schemas.CustomerProfileUpdate,
)
WASTE_BANK = ProfileKind(
    "Waste bank",
    WASTE_BANK_ROLES,
    WasteBankProfile,
    WasteBankProfileRepository,
    schemas.WasteBankProfileResponse,
    schemas.WasteBankProfileUpdate,
)
WASTE_COLLECTOR = ProfileKind(
    "Waste collector",
    COLLECTOR_ROLES,
    WasteCollectorProfile,
    WasteCollectorProfileRepository,
    schemas.WasteCollectorProfileResponse,
    schemas.WasteCollectorProfileUpdate,
)
INDUSTRY = ProfileKind(
    "Industry",
    (UserRole.INDUSTRY,),
    IndustryProfile,
    IndustryProfileRepository,
    schemas.IndustryProfileResponse,
    schemas.IndustryProfileUpdate,
)

PROFILE_KINDS = (CUSTOMER, WASTE_BANK, WASTE_COLLECTOR, INDUSTRY)


def kind_for_role(role: str) -> Optional[ProfileKind]:
    for kind in PROFILE_KINDS:
        if kind.accepts(role):
            return kind
    return None


def drop_impact(total_weight: float, item_count: int) -> dict:
    """Customer profile increments for one completed drop request."""
    return {
        "carbon_deficit": int(total_weight * CARBON_PER_KG),
        "water_saved": int(total_weight * WATER_LITRES_PER_KG),
        "bags_stored": item_count,
        "trees": int(total_weight / KG_PER_TREE),
    }


class ProfileService:
    def __init__(self, db):
        self.db = db
        self.users = UserRepository(db)

    def _repo(self, kind: ProfileKind) -> Repository:
        return kind.repository(self.db)

    async def create_for_user(self, user: dict, session=None) -> Optional[dict]:
        """Open the empty profile matching the user's role; admins and government have none."""
        kind = kind_for_role(user["role"])
        if kind is None:
            return None
        profile = kind.model(user_id=user["_id"])
        return await self._repo(kind).insert(profile.to_mongo(), session=session)

    async def get(self, kind: ProfileKind, profile_id: ObjectId) -> dict:
        doc = await self._repo(kind).find_by_id(profile_id)
        if not doc:
            raise NotFoundError(f"{kind.label} profile not found")
        return doc

    async def get_by_user(self, kind: ProfileKind, user_id: ObjectId) -> dict:
        doc = await self._repo(kind).find_one({"user_id": user_id})
        if not doc:
            raise NotFoundError(f"{kind.label} profile not found")
        return doc

    async def owner(self, doc: dict) -> Optional[dict]:
        return await self.users.find_by_id(doc["user_id"])

    async def update(self, kind: ProfileKind, profile_id: ObjectId, request: BaseModel) -> dict:
        await self.get(kind, profile_id)
        fields = request.model_dump(exclude_none=True)
        if fields:
            await self._repo(kind).update(profile_id, fields)
        return await self.get(kind, profile_id)

    async def delete(self, kind: ProfileKind, profile_id: ObjectId) -> None:
        await self.get(kind, profile_id)
        await self._repo(kind).delete(profile_id)
        logger.info("%s profile %s deleted", kind.label, profile_id)

    async def _accumulate(self, kind: ProfileKind, user_id: ObjectId, fields: dict, session=None) -> None:
        skipped = set(fields) | {"_id", "user_id", "updated_at"}
        defaults = {key: value for key, value in kind.model(user_id=user_id).to_mongo().items() if key not in skipped}
        await self._repo(kind).increment_or_create({"user_id": user_id}, fields, defaults, session=session)

    async def record_drop(
        self,
        customer_id: ObjectId,
        waste_bank_id: ObjectId,
        collector_id: Optional[ObjectId],
        total_weight: float,
        item_count: int,
        session=None,
    ) -> None:
        await self._accumulate(CUSTOMER, customer_id, drop_impact(total_weight, item_count), session=session)
        await self._accumulate(WASTE_BANK, waste_bank_id, {"total_waste_weight": total_weight}, session=session)
        if collector_id:
            await self._accumulate(
                WASTE_COLLECTOR, collector_id, {"total_waste_weight": total_weight}, session=session
            )

    async def record_transfer(self, destination: dict, total_weight: float, session=None) -> None:
        kind = kind_for_role(destination["role"])
        if kind not in (WASTE_BANK, INDUSTRY):
            logger.info("No profile totals kept for role %s", destination["role"])
            return
        await self._accumulate(kind, destination["_id"], {"total_waste_weight": total_weight}, session=session)
