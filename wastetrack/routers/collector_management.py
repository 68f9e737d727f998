from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..database import get_database
from ..enums import WASTE_BANK_ROLES
from ..models import User
from ..schemas import CollectorManagementCreate, CollectorManagementUpdate
from ..services.collectors import CollectorManagementService
from ..services.converters import collector_management_response
from ..services.users import UserService
from ..utils import (
    acting_user_id,
    ensure_owner,
    is_admin,
    paging,
    parse_object_id,
    parse_optional_object_id,
    require_roles,
)

router = APIRouter(prefix="/api/waste-bank/collector-management", tags=["collector_management"])

bank_user = require_roles(*WASTE_BANK_ROLES)


@router.get("")
async def list_collector_management(
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    waste_bank_id: Optional[str] = None,
    collector_id: Optional[str] = None,
    status: Optional[str] = None,
    current_user: User = Depends(bank_user),
):
    db = get_database()
    bank_id = parse_optional_object_id(waste_bank_id, "waste_bank_id") if is_admin(current_user) else current_user.id
    docs, total = await CollectorManagementService(db).search(
        page,
        size,
        waste_bank_id=bank_id,
        collector_id=parse_optional_object_id(collector_id, "collector_id"),
        status=status,
    )
    users = await UserService(db).find_many(
        [doc["waste_bank_id"] for doc in docs] + [doc["collector_id"] for doc in docs]
    )
    return {
        "data": [
            collector_management_response(doc, users.get(doc["waste_bank_id"]), users.get(doc["collector_id"]))
            for doc in docs
        ],
        "paging": paging(page, size, total),
    }


@router.get("/{membership_id}")
async def get_collector_management(membership_id: str, current_user: User = Depends(bank_user)):
    db = get_database()
    doc = await CollectorManagementService(db).get(parse_object_id(membership_id))
    ensure_owner(doc["waste_bank_id"], current_user)
    users = await UserService(db).find_many([doc["waste_bank_id"], doc["collector_id"]])
    return {
        "data": collector_management_response(doc, users.get(doc["waste_bank_id"]), users.get(doc["collector_id"]))
    }


@router.post("")
async def create_collector_management(request: CollectorManagementCreate, current_user: User = Depends(bank_user)):
    waste_bank_id = acting_user_id(current_user, request.waste_bank_id, "waste_bank_id")
    collector_id = parse_object_id(request.collector_id, "collector_id")
    doc = await CollectorManagementService(get_database()).create(waste_bank_id, collector_id, request.status.value)
    return {"data": collector_management_response(doc)}


@router.put("/{membership_id}")
async def update_collector_management(
    membership_id: str,
    request: CollectorManagementUpdate,
    current_user: User = Depends(bank_user),
):
    service = CollectorManagementService(get_database())
    existing = await service.get(parse_object_id(membership_id))
    ensure_owner(existing["waste_bank_id"], current_user)
    if not is_admin(current_user):
        request.waste_bank_id = None
    doc = await service.update(existing["_id"], request)
    return {"data": collector_management_response(doc)}


@router.delete("/{membership_id}")
async def delete_collector_management(membership_id: str, current_user: User = Depends(bank_user)):
    service = CollectorManagementService(get_database())
    existing = await service.get(parse_object_id(membership_id))
    ensure_owner(existing["waste_bank_id"], current_user)
    await service.delete(existing["_id"])
    return {"data": True}
