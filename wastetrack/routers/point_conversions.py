from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..database import get_database
from ..enums import UserRole
from ..models import User
from ..schemas import PointConversionCreate, PointConversionUpdate
from ..services.converters import point_conversion_response
from ..services.points import PointConversionService
from ..utils import (
    acting_user_id,
    ensure_owner,
    get_current_user,
    is_admin,
    paging,
    parse_object_id,
    parse_optional_object_id,
    require_roles,
)

router = APIRouter(prefix="/api", tags=["point_conversions"])


@router.get("/point-conversions")
async def list_point_conversions(
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    user_id: Optional[str] = None,
    status: Optional[str] = None,
    is_deleted: Optional[bool] = None,
    order_by: str = "created_at",
    order_dir: str = "desc",
    current_user: User = Depends(get_current_user),
):
    # Non-admins only ever see their own conversions
    owner = parse_optional_object_id(user_id, "user_id") if is_admin(current_user) else current_user.id
    docs, total = await PointConversionService(get_database()).search(
        page, size, user_id=owner, status=status, is_deleted=is_deleted, order_by=order_by, order_dir=order_dir
    )
    return {"data": [point_conversion_response(doc) for doc in docs], "paging": paging(page, size, total)}


@router.get("/point-conversions/{conversion_id}")
async def get_point_conversion(conversion_id: str, current_user: User = Depends(get_current_user)):
    doc = await PointConversionService(get_database()).get(parse_object_id(conversion_id))
    ensure_owner(doc["user_id"], current_user)
    return {"data": point_conversion_response(doc)}


@router.post("/customer/point-conversions")
async def create_point_conversion(
    request: PointConversionCreate,
    current_user: User = Depends(require_roles(UserRole.CUSTOMER)),
):
    user_id = acting_user_id(current_user, request.user_id)
    doc = await PointConversionService(get_database()).create(user_id, request.amount)
    return {"data": point_conversion_response(doc)}


@router.put("/admin/point-conversions/{conversion_id}")
async def update_point_conversion(
    conversion_id: str,
    request: PointConversionUpdate,
    current_user: User = Depends(require_roles()),
):
    doc = await PointConversionService(get_database()).update(parse_object_id(conversion_id), request)
    return {"data": point_conversion_response(doc)}


@router.delete("/admin/point-conversions/{conversion_id}")
async def delete_point_conversion(conversion_id: str, current_user: User = Depends(require_roles())):
    await PointConversionService(get_database()).delete(parse_object_id(conversion_id))
    return {"data": True}
