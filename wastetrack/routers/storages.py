from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..database import get_database
from ..enums import WASTE_BANK_ROLES, UserRole
from ..models import User
from ..schemas import DeductStorageItemRequest, StorageCreate, StorageItemCreate, StorageItemUpdate, StorageUpdate
from ..services.converters import storage_item_response, storage_response
from ..services.storage import StorageService
from ..utils import (
    acting_user_id,
    ensure_owner,
    get_current_user,
    paging,
    parse_object_id,
    parse_optional_object_id,
    require_roles,
)

router = APIRouter(prefix="/api", tags=["storages"])

# Waste banks and industries keep stock; both route groups share these handlers
stock_owner = require_roles(*WASTE_BANK_ROLES, UserRole.INDUSTRY)
OWNER_PREFIXES = ("/waste-bank", "/industry")


@router.get("/storages")
async def list_storages(
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    user_id: Optional[str] = None,
    is_for_recycled_material: Optional[bool] = None,
    current_user: User = Depends(get_current_user),
):
    docs, total = await StorageService(get_database()).search(
        page,
        size,
        user_id=parse_optional_object_id(user_id, "user_id"),
        is_for_recycled_material=is_for_recycled_material,
    )
    return {"data": [storage_response(doc) for doc in docs], "paging": paging(page, size, total)}


@router.get("/storages/{storage_id}")
async def get_storage(storage_id: str, current_user: User = Depends(get_current_user)):
    doc = await StorageService(get_database()).get(parse_object_id(storage_id))
    return {"data": storage_response(doc)}


@router.get("/storage-items")
async def list_storage_items(
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    storage_id: Optional[str] = None,
    waste_type_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
):
    docs, total = await StorageService(get_database()).search_items(
        page,
        size,
        storage_id=parse_optional_object_id(storage_id, "storage_id"),
        waste_type_id=parse_optional_object_id(waste_type_id, "waste_type_id"),
    )
    return {"data": [storage_item_response(doc) for doc in docs], "paging": paging(page, size, total)}


@router.get("/storage-items/{item_id}")
async def get_storage_item(item_id: str, current_user: User = Depends(get_current_user)):
    doc = await StorageService(get_database()).get_item(parse_object_id(item_id))
    return {"data": storage_item_response(doc)}


async def create_storage(request: StorageCreate, current_user: User = Depends(stock_owner)):
    user_id = acting_user_id(current_user, request.user_id)
    doc = await StorageService(get_database()).create(user_id, request)
    return {"data": storage_response(doc)}


async def update_storage(storage_id: str, request: StorageUpdate, current_user: User = Depends(stock_owner)):
    service = StorageService(get_database())
    existing = await service.get(parse_object_id(storage_id))
    ensure_owner(existing["user_id"], current_user)
    doc = await service.update(existing["_id"], request)
    return {"data": storage_response(doc)}


async def _owned_item(service: StorageService, item_id: str, current_user: User) -> dict:
    item = await service.get_item(parse_object_id(item_id))
    storage = await service.get(item["storage_id"])
    ensure_owner(storage["user_id"], current_user)
    return item


async def create_storage_item(request: StorageItemCreate, current_user: User = Depends(stock_owner)):
    service = StorageService(get_database())
    storage = await service.get(parse_object_id(request.storage_id, "storage_id"))
    ensure_owner(storage["user_id"], current_user)
    doc = await service.create_item(request)
    return {"data": storage_item_response(doc)}


async def update_storage_item(item_id: str, request: StorageItemUpdate, current_user: User = Depends(stock_owner)):
    service = StorageService(get_database())
    item = await _owned_item(service, item_id, current_user)
    doc = await service.update_item(item["_id"], request.weight_kgs)
    return {"data": storage_item_response(doc)}


async def deduct_storage_item(
    item_id: str, request: DeductStorageItemRequest, current_user: User = Depends(stock_owner)
):
    service = StorageService(get_database())
    item = await _owned_item(service, item_id, current_user)
    doc = await service.deduct_item(item["_id"], request.weight_kgs)
    return {"data": storage_item_response(doc) if doc else None}


async def delete_storage_item(item_id: str, current_user: User = Depends(stock_owner)):
    service = StorageService(get_database())
    item = await _owned_item(service, item_id, current_user)
    await service.delete_item(item["_id"])
    return {"data": True}


for prefix in OWNER_PREFIXES:
    router.add_api_route(f"{prefix}/storages", create_storage, methods=["POST"])
    router.add_api_route(f"{prefix}/storages/{{storage_id}}", update_storage, methods=["PUT"])
    router.add_api_route(f"{prefix}/storage-items", create_storage_item, methods=["POST"])
    router.add_api_route(f"{prefix}/storage-items/{{item_id}}", update_storage_item, methods=["PUT"])
    router.add_api_route(f"{prefix}/storage-items/{{item_id}}/deduct-weight", deduct_storage_item, methods=["PUT"])
    router.add_api_route(f"{prefix}/storage-items/{{item_id}}", delete_storage_item, methods=["DELETE"])


@router.delete("/admin/storages/{storage_id}")
async def delete_storage(storage_id: str, current_user: User = Depends(require_roles())):
    await StorageService(get_database()).delete(parse_object_id(storage_id))
    return {"data": True}
