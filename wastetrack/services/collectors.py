import logging
from typing import List, Optional, Tuple

from bson import ObjectId

from ..database import transaction
from ..errors import ConflictError, NotFoundError
from ..models import CollectorManagement
from ..repository import CollectorManagementRepository, UserRepository
from ..schemas import CollectorManagementUpdate
from ..utils import parse_object_id

logger = logging.getLogger(__name__)

DUPLICATE_ASSIGNMENT = "This collector is already assigned to this waste bank"


class CollectorManagementService:
    """Bank <-> collector memberships; each pair exists at most once."""

    def __init__(self, db):
        self.users = UserRepository(db)
        self.memberships = CollectorManagementRepository(db)

    async def _require_user(self, user_id: ObjectId, label: str, session) -> dict:
        user = await self.users.find_by_id(user_id, session=session)
        if not user:
            raise NotFoundError(f"{label} not found")
        return user

    async def create(self, waste_bank_id: ObjectId, collector_id: ObjectId, status: str) -> dict:
        async with transaction() as session:
            await self._require_user(waste_bank_id, "Waste bank", session)
            await self._require_user(collector_id, "Collector", session)

            if await self.memberships.exists(
                {"waste_bank_id": waste_bank_id, "collector_id": collector_id}, session=session
            ):
                logger.warning("Collector %s already assigned to bank %s", collector_id, waste_bank_id)
                raise ConflictError(DUPLICATE_ASSIGNMENT)

            membership = CollectorManagement(
                waste_bank_id=waste_bank_id, collector_id=collector_id, status=status
            )
            return await self.memberships.insert(membership.to_mongo(), session=session)

    async def get(self, membership_id: ObjectId) -> dict:
        doc = await self.memberships.find_by_id(membership_id)
        if not doc:
            raise NotFoundError("Collector management not found")
        return doc

    async def search(
        self,
        page: int,
        size: int,
        waste_bank_id: Optional[ObjectId] = None,
        collector_id: Optional[ObjectId] = None,
        status: Optional[str] = None,
    ) -> Tuple[List[dict], int]:
        filters = {}
        if waste_bank_id:
            filters["waste_bank_id"] = waste_bank_id
        if collector_id:
            filters["collector_id"] = collector_id
        if status:
            filters["status"] = status
        return await self.memberships.search(filters, page, size, sort=[("created_at", -1)])

    async def update(self, membership_id: ObjectId, request: CollectorManagementUpdate) -> dict:
        async with transaction() as session:
            doc = await self.memberships.find_by_id(membership_id, session=session)
            if not doc:
                raise NotFoundError("Collector management not found")

            fields = {}
            if request.waste_bank_id:
                fields["waste_bank_id"] = parse_object_id(request.waste_bank_id, "waste_bank_id")
                await self._require_user(fields["waste_bank_id"], "Waste bank", session)
            if request.collector_id:
                fields["collector_id"] = parse_object_id(request.collector_id, "collector_id")
                await self._require_user(fields["collector_id"], "Collector", session)
            if request.status:
                fields["status"] = request.status.value

            if "waste_bank_id" in fields or "collector_id" in fields:
                pair = {
                    "waste_bank_id": fields.get("waste_bank_id", doc["waste_bank_id"]),
                    "collector_id": fields.get("collector_id", doc["collector_id"]),
                    "_id": {"$ne": membership_id},
                }
                if await self.memberships.exists(pair, session=session):
                    raise ConflictError(DUPLICATE_ASSIGNMENT)

            if fields:
                await self.memberships.update(membership_id, fields, session=session)
            return await self.memberships.find_by_id(membership_id, session=session)

    async def delete(self, membership_id: ObjectId) -> None:
        async with transaction() as session:
            if not await self.memberships.find_by_id(membership_id, session=session):
                raise NotFoundError("Collector management not found")
            await self.memberships.delete(membership_id, session=session)
