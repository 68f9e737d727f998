from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..database import get_database
from ..enums import WASTE_BANK_ROLES
from ..models import User
from ..schemas import (
    WasteBankPricedTypeBatchCreate,
    WasteBankPricedTypeCreate,
    WasteBankPricedTypeUpdate,
    WasteCategoryCreate,
    WasteCategoryUpdate,
    WasteSubcategoryCreate,
    WasteSubcategoryUpdate,
    WasteTypeCreate,
    WasteTypeUpdate,
)
from ..services.catalog import CatalogService, PricedTypeService
from ..services.converters import catalog_entry_response, priced_type_response
from ..utils import (
    acting_user_id,
    ensure_owner,
    get_current_user,
    paging,
    parse_object_id,
    parse_optional_object_id,
    require_roles,
)

router = APIRouter(prefix="/api", tags=["catalog"])

admin_user = require_roles()
bank_user = require_roles(*WASTE_BANK_ROLES)


def _page(docs, page: int, size: int, total: int) -> dict:
    return {"data": [catalog_entry_response(doc) for doc in docs], "paging": paging(page, size, total)}


# Waste categories

@router.get("/waste-categories")
async def list_waste_categories(
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    name: Optional[str] = None,
    current_user: User = Depends(get_current_user),
):
    docs, total = await CatalogService(get_database()).search_categories(page, size, name=name)
    return _page(docs, page, size, total)


@router.get("/waste-categories/{category_id}")
async def get_waste_category(category_id: str, current_user: User = Depends(get_current_user)):
    doc = await CatalogService(get_database()).get_category(parse_object_id(category_id))
    return {"data": catalog_entry_response(doc)}


@router.post("/admin/waste-categories")
async def create_waste_category(request: WasteCategoryCreate, current_user: User = Depends(admin_user)):
    doc = await CatalogService(get_database()).create_category(request)
    return {"data": catalog_entry_response(doc)}


@router.put("/admin/waste-categories/{category_id}")
async def update_waste_category(
    category_id: str, request: WasteCategoryUpdate, current_user: User = Depends(admin_user)
):
    doc = await CatalogService(get_database()).update_category(parse_object_id(category_id), request)
    return {"data": catalog_entry_response(doc)}


@router.delete("/admin/waste-categories/{category_id}")
async def delete_waste_category(category_id: str, current_user: User = Depends(admin_user)):
    await CatalogService(get_database()).delete_category(parse_object_id(category_id))
    return {"data": True}


# Waste subcategories

@router.get("/waste-subcategories")
async def list_waste_subcategories(
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    category_id: Optional[str] = None,
    name: Optional[str] = None,
    current_user: User = Depends(get_current_user),
):
    docs, total = await CatalogService(get_database()).search_subcategories(
        page, size, category_id=parse_optional_object_id(category_id, "category_id"), name=name
    )
    return _page(docs, page, size, total)


@router.get("/waste-subcategories/{subcategory_id}")
async def get_waste_subcategory(subcategory_id: str, current_user: User = Depends(get_current_user)):
    doc = await CatalogService(get_database()).get_subcategory(parse_object_id(subcategory_id))
    return {"data": catalog_entry_response(doc)}


@router.post("/admin/waste-subcategories")
async def create_waste_subcategory(request: WasteSubcategoryCreate, current_user: User = Depends(admin_user)):
    doc = await CatalogService(get_database()).create_subcategory(request)
    return {"data": catalog_entry_response(doc)}


@router.put("/admin/waste-subcategories/{subcategory_id}")
async def update_waste_subcategory(
    subcategory_id: str, request: WasteSubcategoryUpdate, current_user: User = Depends(admin_user)
):
    doc = await CatalogService(get_database()).update_subcategory(parse_object_id(subcategory_id), request)
    return {"data": catalog_entry_response(doc)}


@router.delete("/admin/waste-subcategories/{subcategory_id}")
async def delete_waste_subcategory(subcategory_id: str, current_user: User = Depends(admin_user)):
    await CatalogService(get_database()).delete_subcategory(parse_object_id(subcategory_id))
    return {"data": True}


# Waste types

@router.get("/waste-types")
async def list_waste_types(
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    category_id: Optional[str] = None,
    subcategory_id: Optional[str] = None,
    name: Optional[str] = None,
    current_user: User = Depends(get_current_user),
):
    docs, total = await CatalogService(get_database()).search_types(
        page,
        size,
        category_id=parse_optional_object_id(category_id, "category_id"),
        subcategory_id=parse_optional_object_id(subcategory_id, "subcategory_id"),
        name=name,
    )
    return _page(docs, page, size, total)


@router.get("/waste-types/{waste_type_id}")
async def get_waste_type(waste_type_id: str, current_user: User = Depends(get_current_user)):
    doc = await CatalogService(get_database()).get_type(parse_object_id(waste_type_id))
    return {"data": catalog_entry_response(doc)}


@router.post("/admin/waste-types")
async def create_waste_type(request: WasteTypeCreate, current_user: User = Depends(admin_user)):
    doc = await CatalogService(get_database()).create_type(request)
    return {"data": catalog_entry_response(doc)}


@router.put("/admin/waste-types/{waste_type_id}")
async def update_waste_type(waste_type_id: str, request: WasteTypeUpdate, current_user: User = Depends(admin_user)):
    doc = await CatalogService(get_database()).update_type(parse_object_id(waste_type_id), request)
    return {"data": catalog_entry_response(doc)}


@router.delete("/admin/waste-types/{waste_type_id}")
async def delete_waste_type(waste_type_id: str, current_user: User = Depends(admin_user)):
    await CatalogService(get_database()).delete_type(parse_object_id(waste_type_id))
    return {"data": True}


# Waste bank prices

@router.get("/waste-type-prices")
async def list_waste_type_prices(
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    waste_bank_id: Optional[str] = None,
    waste_type_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
):
    db = get_database()
    docs, total = await PricedTypeService(db).search(
        page,
        size,
        waste_bank_id=parse_optional_object_id(waste_bank_id, "waste_bank_id"),
        waste_type_id=parse_optional_object_id(waste_type_id, "waste_type_id"),
    )
    types = await CatalogService(db).waste_types_by_id(doc["waste_type_id"] for doc in docs)
    return {
        "data": [priced_type_response(doc, types.get(doc["waste_type_id"])) for doc in docs],
        "paging": paging(page, size, total),
    }


@router.get("/waste-type-prices/{priced_type_id}")
async def get_waste_type_price(priced_type_id: str, current_user: User = Depends(get_current_user)):
    db = get_database()
    doc = await PricedTypeService(db).get(parse_object_id(priced_type_id))
    types = await CatalogService(db).waste_types_by_id([doc["waste_type_id"]])
    return {"data": priced_type_response(doc, types.get(doc["waste_type_id"]))}


@router.post("/waste-bank/waste-type-prices")
async def create_waste_type_price(request: WasteBankPricedTypeCreate, current_user: User = Depends(bank_user)):
    waste_bank_id = acting_user_id(current_user, request.waste_bank_id, "waste_bank_id")
    doc = await PricedTypeService(get_database()).create(waste_bank_id, request)
    return {"data": priced_type_response(doc)}


@router.post("/waste-bank/batch-waste-type-prices")
async def create_waste_type_prices_batch(
    request: WasteBankPricedTypeBatchCreate, current_user: User = Depends(bank_user)
):
    waste_bank_id = acting_user_id(current_user, request.waste_bank_id, "waste_bank_id")
    docs = await PricedTypeService(get_database()).create_batch(waste_bank_id, request.items)
    return {"data": [priced_type_response(doc) for doc in docs]}


@router.put("/waste-bank/waste-type-prices/{priced_type_id}")
async def update_waste_type_price(
    priced_type_id: str, request: WasteBankPricedTypeUpdate, current_user: User = Depends(bank_user)
):
    service = PricedTypeService(get_database())
    existing = await service.get(parse_object_id(priced_type_id))
    ensure_owner(existing["waste_bank_id"], current_user)
    doc = await service.update(existing["_id"], request.custom_price_per_kgs)
    return {"data": priced_type_response(doc)}


@router.delete("/waste-bank/waste-type-prices/{priced_type_id}")
async def delete_waste_type_price(priced_type_id: str, current_user: User = Depends(bank_user)):
    service = PricedTypeService(get_database())
    existing = await service.get(parse_object_id(priced_type_id))
    ensure_owner(existing["waste_bank_id"], current_user)
    await service.delete(existing["_id"])
    return {"data": True}
