import re
from typing import Iterable, List, Optional, Tuple

from bson import ObjectId

from ..errors import NotFoundError
from ..repository import UserRepository
from ..utils import distance_to, sort_by_distance

DEFAULT_RADIUS_METERS = 10_000
TEXT_FILTERS = ("username", "email", "institution", "address", "city", "province")


class UserService:
    """User lookups for the other services and the public user directory."""

    def __init__(self, db):
        self.users = UserRepository(db)

    async def require(self, user_id: ObjectId, label: str = "User", session=None) -> dict:
        user = await self.users.find_by_id(user_id, session=session)
        if not user:
            raise NotFoundError(f"{label} not found")
        return user

    async def find_optional(self, user_id: Optional[ObjectId], session=None) -> Optional[dict]:
        if user_id is None:
            return None
        return await self.users.find_by_id(user_id, session=session)

    async def find_many(self, user_ids: Iterable[ObjectId]) -> dict:
        """Users keyed by id; unknown ids are simply absent."""
        ids: List[ObjectId] = list({uid for uid in user_ids if uid is not None})
        if not ids:
            return {}
        docs = await self.users.find_many({"_id": {"$in": ids}})
        return {doc["_id"]: doc for doc in docs}

    async def search(
        self,
        page: int,
        size: int,
        role: Optional[str] = None,
        is_accepting_customer: Optional[bool] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        radius_meters: Optional[int] = None,
        **text: Optional[str],
    ) -> Tuple[List[Tuple[dict, Optional[float]]], int]:
        """Users matching every given filter, nearest first when a point is given.

        Text filters are case-insensitive substrings. With a point, users
        farther than ``radius_meters`` are dropped; users without a location
        are kept and listed last.
        """
        filters = {}
        for field in TEXT_FILTERS:
            if text.get(field):
                filters[field] = {"$regex": re.escape(text[field]), "$options": "i"}
        if role:
            filters["role"] = role
        if is_accepting_customer is not None:
            filters["is_accepting_customer"] = is_accepting_customer

        if latitude is None or longitude is None:
            docs, total = await self.users.search(filters, page, size, sort=[("created_at", -1)])
            return [(doc, None) for doc in docs], total

        radius = radius_meters if radius_meters and radius_meters > 0 else DEFAULT_RADIUS_METERS
        # $geoNear would drop documents without a location, which must still be listed last
        docs = await self.users.find_many(filters)
        distances = {doc["_id"]: distance_to(doc.get("location"), latitude, longitude) for doc in docs}
        docs = [doc for doc in docs if distances[doc["_id"]] is None or distances[doc["_id"]] <= radius]
        ordered = sort_by_distance(docs, distances)
        start = (page - 1) * size
        return [(doc, distances[doc["_id"]]) for doc in ordered[start:start + size]], len(docs)
