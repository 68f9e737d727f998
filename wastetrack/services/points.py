import logging
from typing import List, Optional, Tuple

from bson import ObjectId

from ..database import transaction
from ..errors import InsufficientPointsError, NotFoundError
from ..models import PointConversion
from ..repository import PointConversionRepository, UserRepository
from ..schemas import PointConversionUpdate
from ..utils import parse_object_id

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = ("created_at", "amount", "status")


class PointConversionService:
    def __init__(self, db):
        self.users = UserRepository(db)
        self.conversions = PointConversionRepository(db)

    async def create(self, user_id: ObjectId, amount: int) -> dict:
        """Record a pending conversion of ``amount`` reward points.

        The user's points are checked but not deducted here.
        """
        async with transaction() as session:
            user = await self.users.find_by_id(user_id, session=session)
            if not user:
                raise NotFoundError("User not found")
            if user.get("points", 0) < amount:
                logger.warning("Point conversion of %s rejected for user %s", amount, user_id)
                raise InsufficientPointsError()

            conversion = PointConversion(user_id=user_id, amount=amount, status="pending")
            return await self.conversions.insert(conversion.to_mongo(), session=session)

    async def get(self, conversion_id: ObjectId) -> dict:
        doc = await self.conversions.find_by_id(conversion_id)
        if not doc:
            raise NotFoundError("Point conversion not found")
        return doc

    async def search(
        self,
        page: int,
        size: int,
        user_id: Optional[ObjectId] = None,
        status: Optional[str] = None,
        is_deleted: Optional[bool] = None,
        order_by: str = "created_at",
        order_dir: str = "desc",
    ) -> Tuple[List[dict], int]:
        filters = {}
        if user_id:
            filters["user_id"] = user_id
        if status:
            filters["status"] = status
        if is_deleted is not None:
            filters["is_deleted"] = is_deleted
        if order_by not in SORTABLE_FIELDS:
            order_by = "created_at"
        direction = 1 if order_dir.lower() == "asc" else -1
        return await self.conversions.search(filters, page, size, sort=[(order_by, direction)])

    async def update(self, conversion_id: ObjectId, request: PointConversionUpdate) -> dict:
        async with transaction() as session:
            # Admins may restore a soft-deleted conversion through is_deleted
            doc = await self.conversions.find_including_deleted(conversion_id, session=session)
            if not doc:
                raise NotFoundError("Point conversion not found")

            fields = {}
            if request.user_id:
                user_id = parse_object_id(request.user_id, "user_id")
                if not await self.users.find_by_id(user_id, session=session):
                    raise NotFoundError("User not found")
                fields["user_id"] = user_id
            if request.status:
                fields["status"] = request.status
            if request.is_deleted is not None:
                fields["is_deleted"] = request.is_deleted

            if fields:
                await self.conversions.update(conversion_id, fields, session=session)
            return await self.conversions.find_including_deleted(conversion_id, session=session)

    async def delete(self, conversion_id: ObjectId) -> None:
        async with transaction() as session:
            if not await self.conversions.find_by_id(conversion_id, session=session):
                raise NotFoundError("Point conversion not found")
            await self.conversions.soft_delete(conversion_id, session=session)
