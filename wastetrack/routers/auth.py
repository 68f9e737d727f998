from fastapi import APIRouter, Depends

from ..config import Settings, get_settings
from ..database import get_database
from ..models import User
from ..schemas import LoginRequest, RefreshTokenRequest, RegisterRequest
from ..services.auth import AuthService
from ..services.converters import user_response
from ..utils import get_current_user

router = APIRouter(prefix="/api", tags=["auth"])


@router.post("/auth/register")
async def register(request: RegisterRequest, settings: Settings = Depends(get_settings)):
    user = await AuthService(get_database(), settings).register(request)
    return {"data": user_response(user)}


@router.post("/auth/login")
async def login(request: LoginRequest, settings: Settings = Depends(get_settings)):
    tokens = await AuthService(get_database(), settings).login(request)
    return {"data": tokens}


@router.post("/auth/refresh-token")
async def refresh_token(request: RefreshTokenRequest, settings: Settings = Depends(get_settings)):
    tokens = await AuthService(get_database(), settings).refresh(request.refresh_token)
    return {"data": tokens}


@router.post("/auth/logout")
async def logout(
    request: RefreshTokenRequest,
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    await AuthService(get_database(), settings).logout(current_user.id, request.refresh_token)
    return {"data": True}


@router.post("/auth/logout-all-devices")
async def logout_all_devices(
    current_user: User = Depends(get_current_user), settings: Settings = Depends(get_settings)
):
    revoked = await AuthService(get_database(), settings).logout_all(current_user.id)
    return {"data": {"revoked_sessions": revoked}}


@router.get("/users/current")
async def current(current_user: User = Depends(get_current_user)):
    return {"data": user_response(current_user.to_mongo())}
