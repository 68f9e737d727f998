from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..config import Settings, get_settings
from ..database import get_database
from ..enums import UserRole
from ..models import User
from ..services.government import GovernmentDashboardService
from ..utils import require_roles

router = APIRouter(prefix="/api/government", tags=["government"])


@router.get("/dashboard")
async def government_dashboard(
    start_month: str = Query(..., description="First month of the window, YYYY-MM"),
    end_month: str = Query(..., description="Last month of the window, YYYY-MM"),
    province: Optional[str] = None,
    city: Optional[str] = None,
    current_user: User = Depends(require_roles(UserRole.GOVERNMENT)),
    settings: Settings = Depends(get_settings),
):
    service = GovernmentDashboardService(get_database(), settings.timezone)
    return {"data": await service.dashboard(start_month, end_month, province=province, city=city)}
