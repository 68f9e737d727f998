import logging
from typing import List, Optional, Tuple

from bson import ObjectId

from ..errors import BadRequestError, ConflictError, NotFoundError
from ..models import Storage, StorageItem
from ..repository import StorageItemRepository, StorageRepository, UserRepository, WasteTypeRepository
from ..schemas import StorageCreate, StorageItemCreate, StorageUpdate
from ..utils import parse_object_id

logger = logging.getLogger(__name__)

# Size of the storage opened automatically for a user who receives waste without one
DEFAULT_STORAGE_DIMENSIONS = {"length": 10.0, "width": 10.0, "height": 3.0}


class StorageService:
    def __init__(self, db):
        self.users = UserRepository(db)
        self.types = WasteTypeRepository(db)
        self.storages = StorageRepository(db)
        self.items = StorageItemRepository(db)

    async def create(self, user_id: ObjectId, request: StorageCreate) -> dict:
        if not await self.users.find_by_id(user_id):
            raise NotFoundError("User not found")
        storage = Storage(
            user_id=user_id,
            length=request.length,
            width=request.width,
            height=request.height,
            is_for_recycled_material=request.is_for_recycled_material,
        )
        return await self.storages.insert(storage.to_mongo())

    async def get(self, storage_id: ObjectId) -> dict:
        doc = await self.storages.find_by_id(storage_id)
        if not doc:
            raise NotFoundError("Storage not found")
        return doc

    async def search(
        self,
        page: int,
        size: int,
        user_id: Optional[ObjectId] = None,
        is_for_recycled_material: Optional[bool] = None,
    ) -> Tuple[List[dict], int]:
        filters = {}
        if user_id:
            filters["user_id"] = user_id
        if is_for_recycled_material is not None:
            filters["is_for_recycled_material"] = is_for_recycled_material
        return await self.storages.search(filters, page, size, sort=[("created_at", -1)])

    async def update(self, storage_id: ObjectId, request: StorageUpdate) -> dict:
        await self.get(storage_id)
        fields = request.model_dump(exclude_none=True)
        if fields:
            await self.storages.update(storage_id, fields)
        return await self.storages.find_by_id(storage_id)

    async def delete(self, storage_id: ObjectId) -> None:
        await self.get(storage_id)
        await self.storages.soft_delete(storage_id)

    # Storage items

    async def create_item(self, request: StorageItemCreate) -> dict:
        storage_id = parse_object_id(request.storage_id, "storage_id")
        waste_type_id = parse_object_id(request.waste_type_id, "waste_type_id")
        await self.get(storage_id)
        if not await self.types.find_by_id(waste_type_id):
            raise NotFoundError("Waste type not found")
        if await self.items.exists({"storage_id": storage_id, "waste_type_id": waste_type_id}):
            raise ConflictError("Storage already holds this waste type")
        item = StorageItem(storage_id=storage_id, waste_type_id=waste_type_id, weight_kgs=request.weight_kgs)
        return await self.items.insert(item.to_mongo())

    async def get_item(self, item_id: ObjectId) -> dict:
        doc = await self.items.find_by_id(item_id)
        if not doc:
            raise NotFoundError("Storage item not found")
        return doc

    async def search_items(
        self,
        page: int,
        size: int,
        storage_id: Optional[ObjectId] = None,
        waste_type_id: Optional[ObjectId] = None,
    ) -> Tuple[List[dict], int]:
        filters = {}
        if storage_id:
            filters["storage_id"] = storage_id
        if waste_type_id:
            filters["waste_type_id"] = waste_type_id
        return await self.items.search(filters, page, size, sort=[("created_at", -1)])

    async def update_item(self, item_id: ObjectId, weight_kgs: float) -> dict:
        await self.get_item(item_id)
        await self.items.update(item_id, {"weight_kgs": weight_kgs})
        return await self.items.find_by_id(item_id)

    async def delete_item(self, item_id: ObjectId) -> None:
        await self.get_item(item_id)
        await self.items.delete(item_id)

    # Stock movements used by request completion, always inside the caller's transaction

    async def find_raw_material_storage(self, user_id: ObjectId, session=None) -> Optional[dict]:
        existing = await self.storages.find_many(
            {"user_id": user_id, "is_for_recycled_material": False},
            sort=[("created_at", 1)],
            session=session,
        )
        return existing[0] if existing else None

    async def raw_material_storage(self, user_id: ObjectId, session=None) -> dict:
        """First raw-material storage of ``user_id``, opening a default one if needed."""
        storage = await self.find_raw_material_storage(user_id, session=session)
        if storage:
            return storage

        storage = Storage(user_id=user_id, is_for_recycled_material=False, **DEFAULT_STORAGE_DIMENSIONS)
        logger.info("Opening default raw material storage for user %s", user_id)
        return await self.storages.insert(storage.to_mongo(), session=session)

    async def add_stock(self, storage_id: ObjectId, waste_type_id: ObjectId, weight: float, session=None) -> None:
        if weight <= 0:
            return
        item = await self.items.find_one({"storage_id": storage_id, "waste_type_id": waste_type_id}, session=session)
        if item:
            await self.items.increment(item["_id"], {"weight_kgs": weight}, session=session)
            return
        new_item = StorageItem(storage_id=storage_id, waste_type_id=waste_type_id, weight_kgs=weight)
        await self.items.insert(new_item.to_mongo(), session=session)

    async def ensure_stock(
        self, storage: Optional[dict], waste_type_id: ObjectId, weight: float, session=None
    ) -> Optional[dict]:
        """Storage item able to supply ``weight`` kg, or a 400 explaining why not."""
        if weight <= 0:
            return None
        item = None
        if storage:
            item = await self.items.find_one(
                {"storage_id": storage["_id"], "waste_type_id": waste_type_id}, session=session
            )
        if not item:
            raise BadRequestError(f"Waste type {waste_type_id} not found in source storage")
        if item["weight_kgs"] < weight:
            raise BadRequestError(
                f"Insufficient stock for waste type {waste_type_id}: "
                f"available {item['weight_kgs']} kg, requested {weight} kg"
            )
        return item

    async def remove_stock(self, storage: Optional[dict], waste_type_id: ObjectId, weight: float, session=None) -> None:
        item = await self.ensure_stock(storage, waste_type_id, weight, session=session)
        if item is None:
            return
        remaining = item["weight_kgs"] - weight
        if remaining <= 0:
            await self.items.delete(item["_id"], session=session)
        else:
            await self.items.update(item["_id"], {"weight_kgs": remaining}, session=session)

    async def deduct_item(self, item_id: ObjectId, weight: float) -> Optional[dict]:
        """Take ``weight`` kg out of a storage item; ``None`` once it is emptied."""
        if weight <= 0:
            raise BadRequestError("weight must be positive")
        item = await self.get_item(item_id)
        storage = await self.get(item["storage_id"])
        await self.remove_stock(storage, item["waste_type_id"], weight)
        return await self.items.find_by_id(item_id)
