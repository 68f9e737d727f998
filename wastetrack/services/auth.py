import logging
import secrets
from datetime import timedelta

from bson import ObjectId

from ..config import Settings
from ..database import transaction
from ..dates import utcnow
from ..enums import COLLECTOR_ROLES, WASTE_BANK_ROLES, CollectorStatus
from ..errors import BadRequestError, ConflictError, UnauthorizedError
from ..models import CollectorManagement, GeoPoint, RefreshToken, User, get_password_hash, verify_password
from ..repository import CollectorManagementRepository, RefreshTokenRepository, UserRepository
from ..schemas import LoginRequest, RegisterRequest, TokenResponse
from ..utils import create_access_token
from .converters import user_response
from .profiles import ProfileService

logger = logging.getLogger(__name__)


class AuthService:
    """Registration, login and refresh-token rotation."""

    def __init__(self, db, settings: Settings):
        self.settings = settings
        self.users = UserRepository(db)
        self.tokens = RefreshTokenRepository(db)
        self.memberships = CollectorManagementRepository(db)
        self.profiles = ProfileService(db)

    async def register(self, request: RegisterRequest) -> dict:
        if await self.users.exists({"email": request.email}):
            raise ConflictError("Email already registered")
        if await self.users.exists({"username": request.username}):
            raise ConflictError("Username already taken")

        user = User(
            username=request.username,
            email=request.email,
            password=get_password_hash(request.password),
            role=request.role,
            phone_number=request.phone_number,
            institution=request.institution,
            address=request.address,
            city=request.city,
            province=request.province,
            location=(
                GeoPoint.from_lat_lng(request.location.latitude, request.location.longitude)
                if request.location else None
            ),
        )
        async with transaction() as session:
            bank_id = None
            if user.role in {role.value for role in COLLECTOR_ROLES}:
                bank_id = await self._require_institution(request.institution_id, session)

            doc = await self.users.insert(user.to_mongo(), session=session)
            await self.profiles.create_for_user(doc, session=session)
            if bank_id is not None:
                membership = CollectorManagement(
                    waste_bank_id=bank_id, collector_id=doc["_id"], status=CollectorStatus.ACTIVE
                )
                await self.memberships.insert(membership.to_mongo(), session=session)
        logger.info("Registered user %s with role %s", doc["_id"], doc["role"])
        return doc

    async def _require_institution(self, institution_id, session=None) -> ObjectId:
        if not institution_id:
            raise BadRequestError("institution_id is required for waste collectors")
        if not ObjectId.is_valid(institution_id):
            raise BadRequestError("Institution not found")
        bank = await self.users.find_by_id(ObjectId(institution_id), session=session)
        if not bank or bank["role"] not in {role.value for role in WASTE_BANK_ROLES}:
            raise BadRequestError("Institution not found")
        return bank["_id"]

    async def login(self, request: LoginRequest) -> TokenResponse:
        user = await self.users.find_one({"email": request.email})
        if not user or not verify_password(request.password, user["password"]):
            logger.warning("Failed login for %s", request.email)
            raise UnauthorizedError("Invalid email or password")
        return await self._issue_tokens(user)

    async def refresh(self, refresh_token: str) -> TokenResponse:
        stored = await self.tokens.find_one({"token": refresh_token, "is_revoked": False})
        if not stored or stored["expires_at"] < utcnow():
            raise UnauthorizedError("Invalid or expired refresh token")

        user = await self.users.find_by_id(stored["user_id"])
        if not user:
            raise UnauthorizedError("User no longer exists")

        await self.tokens.update(stored["_id"], {"is_revoked": True})
        return await self._issue_tokens(user)

    async def logout(self, user_id: ObjectId, refresh_token: str) -> None:
        await self.tokens.update_many({"token": refresh_token, "user_id": user_id}, {"is_revoked": True})

    async def logout_all(self, user_id: ObjectId) -> int:
        return await self.tokens.update_many({"user_id": user_id, "is_revoked": False}, {"is_revoked": True})

    async def cleanup_expired_tokens(self) -> int:
        return await self.tokens.delete_many(
            {"$or": [{"expires_at": {"$lt": utcnow()}}, {"is_revoked": True}]}
        )

    async def _issue_tokens(self, user: dict) -> TokenResponse:
        await self._enforce_session_limit(user["_id"])

        access_token = create_access_token(
            {
                "sub": str(user["_id"]),
                "user_id": str(user["_id"]),
                "role": user["role"],
                "is_email_verified": user.get("is_email_verified", False),
            },
            self.settings,
        )
        refresh = RefreshToken(
            user_id=user["_id"],
            token=secrets.token_hex(32),
            expires_at=utcnow() + timedelta(days=self.settings.refresh_token_expire_days),
        )
        await self.tokens.insert(refresh.to_mongo())

        return TokenResponse(
            access_token=access_token,
            refresh_token=refresh.token,
            expires_in=self.settings.access_token_expire_minutes * 60,
            user=user_response(user),
        )

    async def _enforce_session_limit(self, user_id: ObjectId) -> None:
        # Keep room for the token about to be issued
        live = await self.tokens.find_many(
            {"user_id": user_id, "is_revoked": False, "expires_at": {"$gt": utcnow()}},
            sort=[("created_at", 1)],
        )
        overflow = len(live) - self.settings.max_active_sessions + 1
        for token in live[:max(overflow, 0)]:
            await self.tokens.update(token["_id"], {"is_revoked": True})
