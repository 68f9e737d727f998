"""Thin data-access layer over motor collections.

Every repository call accepts an optional ``session`` so services can group
several writes inside :func:`wastetrack.database.transaction`.
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId

from .dates import utcnow

Sort = Sequence[Tuple[str, int]]


def _session_kwargs(session) -> Dict[str, Any]:
    return {"session": session} if session is not None else {}


class Repository:
    collection_name: str = ""
    # Collections whose rows are hidden rather than removed
    hides_deleted: bool = False

    def __init__(self, db):
        self.db = db
        self.collection = db[self.collection_name]

    def _scope(self, filters: Optional[dict]) -> dict:
        filters = dict(filters or {})
        if self.hides_deleted:
            filters.setdefault("is_deleted", False)
        return filters

    async def find_by_id(self, doc_id: ObjectId, session=None) -> Optional[dict]:
        return await self.collection.find_one(self._scope({"_id": doc_id}), **_session_kwargs(session))

    async def find_including_deleted(self, doc_id: ObjectId, session=None) -> Optional[dict]:
        return await self.collection.find_one({"_id": doc_id}, **_session_kwargs(session))

    async def find_one(self, filters: dict, session=None) -> Optional[dict]:
        return await self.collection.find_one(self._scope(filters), **_session_kwargs(session))

    async def find_many(self, filters: dict, sort: Optional[Sort] = None, session=None) -> List[dict]:
        kwargs = _session_kwargs(session)
        if sort:
            kwargs["sort"] = list(sort)
        return await self.collection.find(self._scope(filters), **kwargs).to_list(length=None)

    async def count(self, filters: dict, session=None) -> int:
        return await self.collection.count_documents(self._scope(filters), **_session_kwargs(session))

    async def exists(self, filters: dict, session=None) -> bool:
        return await self.find_one(filters, session=session) is not None

    async def search(
        self, filters: dict, page: int, size: int, sort: Optional[Sort] = None
    ) -> Tuple[List[dict], int]:
        """One page of matching documents plus the total match count."""
        scoped = self._scope(filters)
        kwargs = {"skip": (page - 1) * size, "limit": size}
        if sort:
            kwargs["sort"] = list(sort)
        items = await self.collection.find(scoped, **kwargs).to_list(length=size)
        total = await self.collection.count_documents(scoped)
        return items, total

    async def insert(self, doc: dict, session=None) -> dict:
        await self.collection.insert_one(doc, **_session_kwargs(session))
        return doc

    async def insert_many(self, docs: List[dict], session=None) -> List[dict]:
        if docs:
            await self.collection.insert_many(docs, **_session_kwargs(session))
        return docs

    async def update(self, doc_id: ObjectId, fields: dict, session=None) -> None:
        fields = dict(fields, updated_at=utcnow())
        await self.collection.update_one({"_id": doc_id}, {"$set": fields}, **_session_kwargs(session))

    async def increment(self, doc_id: ObjectId, fields: dict, session=None) -> None:
        await self.collection.update_one(
            {"_id": doc_id},
            {"$inc": fields, "$set": {"updated_at": utcnow()}},
            **_session_kwargs(session),
        )

    async def update_many(self, filters: dict, fields: dict, session=None) -> int:
        fields = dict(fields, updated_at=utcnow())
        result = await self.collection.update_many(
            self._scope(filters), {"$set": fields}, **_session_kwargs(session)
        )
        return result.modified_count

    async def delete(self, doc_id: ObjectId, session=None) -> None:
        await self.collection.delete_one({"_id": doc_id}, **_session_kwargs(session))

    async def delete_many(self, filters: dict, session=None) -> int:
        result = await self.collection.delete_many(filters, **_session_kwargs(session))
        return result.deleted_count

    async def increment_or_create(self, filters: dict, fields: dict, defaults: dict, session=None) -> None:
        """$inc on the matching document, inserting it with ``defaults`` first if missing."""
        await self.collection.update_one(
            filters,
            {"$inc": fields, "$set": {"updated_at": utcnow()}, "$setOnInsert": defaults},
            upsert=True,
            **_session_kwargs(session),
        )

    async def soft_delete(self, doc_id: ObjectId, session=None) -> None:
        await self.update(doc_id, {"is_deleted": True}, session=session)


class UserRepository(Repository):
    collection_name = "users"


class RefreshTokenRepository(Repository):
    collection_name = "refresh_tokens"


class SalaryTransactionRepository(Repository):
    collection_name = "salary_transactions"


class PointConversionRepository(Repository):
    collection_name = "point_conversions"
    hides_deleted = True


class CollectorManagementRepository(Repository):
    collection_name = "collector_managements"


class WasteCategoryRepository(Repository):
    collection_name = "waste_categories"


class WasteSubcategoryRepository(Repository):
    collection_name = "waste_subcategories"


class WasteTypeRepository(Repository):
    collection_name = "waste_types"


class WasteBankPricedTypeRepository(Repository):
    collection_name = "waste_bank_priced_types"


class StorageRepository(Repository):
    collection_name = "storages"
    hides_deleted = True


class StorageItemRepository(Repository):
    collection_name = "storage_items"


class WasteDropRequestRepository(Repository):
    collection_name = "waste_drop_requests"
    hides_deleted = True


class WasteDropRequestItemRepository(Repository):
    collection_name = "waste_drop_request_items"
    hides_deleted = True


class WasteTransferRequestRepository(Repository):
    collection_name = "waste_transfer_requests"
    hides_deleted = True


class WasteTransferItemRepository(Repository):
    collection_name = "waste_transfer_items"
    hides_deleted = True


class CustomerProfileRepository(Repository):
    collection_name = "customer_profiles"


class WasteBankProfileRepository(Repository):
    collection_name = "waste_bank_profiles"


class WasteCollectorProfileRepository(Repository):
    collection_name = "waste_collector_profiles"


class IndustryProfileRepository(Repository):
    collection_name = "industry_profiles"
