import logging
from typing import Iterable, List, Optional, Tuple

from bson import ObjectId

from ..database import transaction
from ..errors import ConflictError, NotFoundError
from ..models import WasteBankPricedType, WasteCategory, WasteSubcategory, WasteType
from ..repository import (
    UserRepository,
    WasteBankPricedTypeRepository,
    WasteCategoryRepository,
    WasteSubcategoryRepository,
    WasteTypeRepository,
)
from ..schemas import (
    WasteBankPricedTypeCreate,
    WasteCategoryCreate,
    WasteCategoryUpdate,
    WasteSubcategoryCreate,
    WasteSubcategoryUpdate,
    WasteTypeCreate,
    WasteTypeUpdate,
)
from ..utils import parse_object_id, parse_optional_object_id

logger = logging.getLogger(__name__)


class CatalogService:
    """Category -> subcategory -> waste type taxonomy."""

    def __init__(self, db):
        self.categories = WasteCategoryRepository(db)
        self.subcategories = WasteSubcategoryRepository(db)
        self.types = WasteTypeRepository(db)

    async def _require(self, repo, doc_id: ObjectId, label: str, session=None) -> dict:
        doc = await repo.find_by_id(doc_id, session=session)
        if not doc:
            raise NotFoundError(f"{label} not found")
        return doc

    async def require_waste_types(self, waste_type_ids: Iterable[ObjectId], session=None) -> dict:
        """Waste types keyed by id; any unknown id is a 404."""
        ids = list(set(waste_type_ids))
        docs = await self.types.find_many({"_id": {"$in": ids}}, session=session)
        if len(docs) != len(ids):
            raise NotFoundError("Waste type not found")
        return {doc["_id"]: doc for doc in docs}

    async def waste_types_by_id(self, waste_type_ids: Iterable[ObjectId]) -> dict:
        ids = list(set(waste_type_ids))
        if not ids:
            return {}
        docs = await self.types.find_many({"_id": {"$in": ids}})
        return {doc["_id"]: doc for doc in docs}

    # Categories

    async def create_category(self, request: WasteCategoryCreate) -> dict:
        category = WasteCategory(name=request.name, description=request.description)
        return await self.categories.insert(category.to_mongo())

    async def get_category(self, category_id: ObjectId) -> dict:
        return await self._require(self.categories, category_id, "Waste category")

    async def search_categories(self, page: int, size: int, name: Optional[str] = None) -> Tuple[List[dict], int]:
        filters = {"name": {"$regex": name, "$options": "i"}} if name else {}
        return await self.categories.search(filters, page, size, sort=[("name", 1)])

    async def update_category(self, category_id: ObjectId, request: WasteCategoryUpdate) -> dict:
        await self._require(self.categories, category_id, "Waste category")
        fields = request.model_dump(exclude_none=True)
        if fields:
            await self.categories.update(category_id, fields)
        return await self.categories.find_by_id(category_id)

    async def delete_category(self, category_id: ObjectId) -> None:
        await self._require(self.categories, category_id, "Waste category")
        if await self.types.exists({"category_id": category_id}):
            raise ConflictError("Waste category is still used by waste types")
        async with transaction() as session:
            await self.subcategories.delete_many({"category_id": category_id}, session=session)
            await self.categories.delete(category_id, session=session)

    # Subcategories

    async def create_subcategory(self, request: WasteSubcategoryCreate) -> dict:
        category_id = parse_object_id(request.category_id, "category_id")
        await self._require(self.categories, category_id, "Waste category")
        subcategory = WasteSubcategory(category_id=category_id, name=request.name, description=request.description)
        return await self.subcategories.insert(subcategory.to_mongo())

    async def get_subcategory(self, subcategory_id: ObjectId) -> dict:
        return await self._require(self.subcategories, subcategory_id, "Waste subcategory")

    async def search_subcategories(
        self, page: int, size: int, category_id: Optional[ObjectId] = None, name: Optional[str] = None
    ) -> Tuple[List[dict], int]:
        filters = {}
        if category_id:
            filters["category_id"] = category_id
        if name:
            filters["name"] = {"$regex": name, "$options": "i"}
        return await self.subcategories.search(filters, page, size, sort=[("name", 1)])

    async def update_subcategory(self, subcategory_id: ObjectId, request: WasteSubcategoryUpdate) -> dict:
        await self._require(self.subcategories, subcategory_id, "Waste subcategory")
        fields = request.model_dump(exclude_none=True)
        if "category_id" in fields:
            fields["category_id"] = parse_object_id(fields["category_id"], "category_id")
            await self._require(self.categories, fields["category_id"], "Waste category")
        if fields:
            await self.subcategories.update(subcategory_id, fields)
        return await self.subcategories.find_by_id(subcategory_id)

    async def delete_subcategory(self, subcategory_id: ObjectId) -> None:
        await self._require(self.subcategories, subcategory_id, "Waste subcategory")
        await self.subcategories.delete(subcategory_id)

    # Waste types

    async def create_type(self, request: WasteTypeCreate) -> dict:
        category_id = parse_object_id(request.category_id, "category_id")
        subcategory_id = parse_optional_object_id(request.subcategory_id, "subcategory_id")
        await self._require(self.categories, category_id, "Waste category")
        if subcategory_id:
            await self._require(self.subcategories, subcategory_id, "Waste subcategory")
        waste_type = WasteType(
            category_id=category_id,
            subcategory_id=subcategory_id,
            name=request.name,
            description=request.description,
        )
        return await self.types.insert(waste_type.to_mongo())

    async def get_type(self, waste_type_id: ObjectId) -> dict:
        return await self._require(self.types, waste_type_id, "Waste type")

    async def search_types(
        self,
        page: int,
        size: int,
        category_id: Optional[ObjectId] = None,
        subcategory_id: Optional[ObjectId] = None,
        name: Optional[str] = None,
    ) -> Tuple[List[dict], int]:
        filters = {}
        if category_id:
            filters["category_id"] = category_id
        if subcategory_id:
            filters["subcategory_id"] = subcategory_id
        if name:
            filters["name"] = {"$regex": name, "$options": "i"}
        return await self.types.search(filters, page, size, sort=[("name", 1)])

    async def update_type(self, waste_type_id: ObjectId, request: WasteTypeUpdate) -> dict:
        await self._require(self.types, waste_type_id, "Waste type")
        fields = request.model_dump(exclude_none=True)
        if "category_id" in fields:
            fields["category_id"] = parse_object_id(fields["category_id"], "category_id")
            await self._require(self.categories, fields["category_id"], "Waste category")
        if "subcategory_id" in fields:
            fields["subcategory_id"] = parse_object_id(fields["subcategory_id"], "subcategory_id")
            await self._require(self.subcategories, fields["subcategory_id"], "Waste subcategory")
        if fields:
            await self.types.update(waste_type_id, fields)
        return await self.types.find_by_id(waste_type_id)

    async def delete_type(self, waste_type_id: ObjectId) -> None:
        await self._require(self.types, waste_type_id, "Waste type")
        await self.types.delete(waste_type_id)


class PricedTypeService:
    """A waste bank's own price per kg for each waste type it accepts."""

    def __init__(self, db):
        self.users = UserRepository(db)
        self.types = WasteTypeRepository(db)
        self.priced_types = WasteBankPricedTypeRepository(db)

    async def _build(self, waste_bank_id: ObjectId, request: WasteBankPricedTypeCreate, session) -> dict:
        waste_type_id = parse_object_id(request.waste_type_id, "waste_type_id")
        if not await self.types.find_by_id(waste_type_id, session=session):
            raise NotFoundError("Waste type not found")
        if await self.priced_types.exists(
            {"waste_bank_id": waste_bank_id, "waste_type_id": waste_type_id}, session=session
        ):
            raise ConflictError("Waste bank already has a price for this waste type")
        priced = WasteBankPricedType(
            waste_bank_id=waste_bank_id,
            waste_type_id=waste_type_id,
            custom_price_per_kgs=request.custom_price_per_kgs,
        )
        return priced.to_mongo()

    async def create(self, waste_bank_id: ObjectId, request: WasteBankPricedTypeCreate) -> dict:
        async with transaction() as session:
            if not await self.users.find_by_id(waste_bank_id, session=session):
                raise NotFoundError("Waste bank not found")
            doc = await self._build(waste_bank_id, request, session)
            return await self.priced_types.insert(doc, session=session)

    async def create_batch(self, waste_bank_id: ObjectId, requests: List[WasteBankPricedTypeCreate]) -> List[dict]:
        seen = set()
        for request in requests:
            if request.waste_type_id in seen:
                raise ConflictError("Duplicate waste type in batch")
            seen.add(request.waste_type_id)

        async with transaction() as session:
            if not await self.users.find_by_id(waste_bank_id, session=session):
                raise NotFoundError("Waste bank not found")
            docs = [await self._build(waste_bank_id, request, session) for request in requests]
            return await self.priced_types.insert_many(docs, session=session)

    async def get(self, priced_type_id: ObjectId) -> dict:
        doc = await self.priced_types.find_by_id(priced_type_id)
        if not doc:
            raise NotFoundError("Waste bank priced type not found")
        return doc

    async def search(
        self,
        page: int,
        size: int,
        waste_bank_id: Optional[ObjectId] = None,
        waste_type_id: Optional[ObjectId] = None,
    ) -> Tuple[List[dict], int]:
        filters = {}
        if waste_bank_id:
            filters["waste_bank_id"] = waste_bank_id
        if waste_type_id:
            filters["waste_type_id"] = waste_type_id
        return await self.priced_types.search(filters, page, size, sort=[("created_at", -1)])

    async def update(self, priced_type_id: ObjectId, custom_price_per_kgs: float) -> dict:
        await self.get(priced_type_id)
        await self.priced_types.update(priced_type_id, {"custom_price_per_kgs": custom_price_per_kgs})
        return await self.priced_types.find_by_id(priced_type_id)

    async def delete(self, priced_type_id: ObjectId) -> None:
        await self.get(priced_type_id)
        await self.priced_types.delete(priced_type_id)
