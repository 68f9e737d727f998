import math
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

import jwt
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, Request

from .config import Settings, get_settings
from .database import get_database
from .dates import utcnow
from .enums import UserRole
from .errors import BadRequestError, ForbiddenError, UnauthorizedError
from .models import User

EARTH_RADIUS_METERS = 6371000.0


def create_access_token(data: dict, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    issued_at = utcnow()
    expire = issued_at + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire, "iat": issued_at})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str, settings: Settings) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.InvalidTokenError:
        return None


def _extract_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1]
    return request.cookies.get("access_token")


async def get_current_user(request: Request, settings: Settings = Depends(get_settings)) -> User:
    token = _extract_token(request)
    if not token:
        raise UnauthorizedError()

    payload = verify_token(token, settings)
    if not payload or not payload.get("sub"):
        raise UnauthorizedError("Invalid or expired token")

    try:
        user_id = ObjectId(payload["sub"])
    except (InvalidId, TypeError):
        raise UnauthorizedError("Invalid or expired token")

    db = get_database()
    user_doc = await db.users.find_one({"_id": user_id})
    if not user_doc:
        raise UnauthorizedError("User no longer exists")
    return User(**user_doc)


def require_roles(*roles: UserRole):
    """Dependency that admits admins plus the listed roles."""
    allowed = {UserRole.ADMIN.value} | {role.value for role in roles}

    async def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise ForbiddenError()
        return current_user

    return checker


def parse_object_id(value: Any, field: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise BadRequestError(f"Invalid {field}")


def parse_optional_object_id(value: Any, field: str = "id") -> Optional[ObjectId]:
    if value in (None, ""):
        return None
    return parse_object_id(value, field)


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in metres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(a))


def distance_to(location: Optional[dict], latitude: Optional[float], longitude: Optional[float]) -> Optional[float]:
    """Distance from a caller point to a stored GeoJSON location, if both exist."""
    if latitude is None or longitude is None or not location:
        return None
    lng, lat = location["coordinates"]
    return haversine_distance(latitude, longitude, lat, lng)


def location_response(location: Optional[dict]) -> Optional[Dict[str, float]]:
    if not location:
        return None
    lng, lat = location["coordinates"]
    return {"latitude": lat, "longitude": lng}


def to_response(doc: dict, exclude: Iterable[str] = ()) -> dict:
    """Mongo document -> JSON-ready dict with ``id`` and string ObjectIds."""
    skip = set(exclude)
    result = {"id": str(doc["_id"])}
    for key, value in doc.items():
        if key == "_id" or key in skip:
            continue
        if isinstance(value, ObjectId):
            value = str(value)
        result[key] = value
    return result


def paging(page: int, size: int, total_item: int) -> dict:
    return {
        "page": page,
        "size": size,
        "total_item": total_item,
        "total_page": math.ceil(total_item / size) if size else 0,
    }


def sort_by_distance(docs: List[dict], distances: Dict[Any, Optional[float]]) -> List[dict]:
    """Nearest first; documents without a location go last, newest first."""
    known = [doc for doc in docs if distances.get(doc["_id"]) is not None]
    unknown = [doc for doc in docs if distances.get(doc["_id"]) is None]
    known.sort(key=lambda doc: (distances[doc["_id"]], doc["created_at"]))
    unknown.sort(key=lambda doc: doc["created_at"], reverse=True)
    return known + unknown


def is_admin(user: User) -> bool:
    return user.role == UserRole.ADMIN.value


def ensure_owner(owner_id: ObjectId, user: User) -> None:
    """Mutations on owned resources are limited to the owner and admins."""
    if not is_admin(user) and owner_id != user.id:
        raise ForbiddenError("You can only modify your own resources")


def acting_user_id(user: User, requested_id: Optional[str], field: str = "user_id") -> ObjectId:
    """Admins may act for another user; everyone else acts for themselves."""
    if is_admin(user) and requested_id:
        return parse_object_id(requested_id, field)
    return user.id


def ensure_participant(user: User, *participant_ids: Optional[ObjectId]) -> None:
    """Like :func:`ensure_owner` for requests with several parties."""
    if not is_admin(user) and user.id not in [pid for pid in participant_ids if pid is not None]:
        raise ForbiddenError("You are not a participant of this request")
