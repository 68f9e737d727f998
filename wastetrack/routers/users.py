from typing import Optional

from fastapi import APIRouter, Query

from ..database import get_database
from ..enums import UserRole
from ..services.converters import user_search_response
from ..services.users import UserService
from ..utils import paging

router = APIRouter(prefix="/api", tags=["users"])


@router.get("/users")
async def list_users(
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    username: Optional[str] = None,
    email: Optional[str] = None,
    role: Optional[UserRole] = None,
    institution: Optional[str] = None,
    address: Optional[str] = None,
    city: Optional[str] = None,
    province: Optional[str] = None,
    is_accepting_customer: Optional[bool] = None,
    latitude: Optional[float] = Query(None, ge=-90, le=90),
    longitude: Optional[float] = Query(None, ge=-180, le=180),
    radius_meters: Optional[int] = Query(None, ge=1),
):
    results, total = await UserService(get_database()).search(
        page,
        size,
        role=role.value if role else None,
        is_accepting_customer=is_accepting_customer,
        latitude=latitude,
        longitude=longitude,
        radius_meters=radius_meters,
        username=username,
        email=email,
        institution=institution,
        address=address,
        city=city,
        province=province,
    )
    return {
        "data": [user_search_response(doc, distance) for doc, distance in results],
        "paging": paging(page, size, total),
    }
