from fastapi import APIRouter, Depends

from ..database import get_database
from ..enums import COLLECTOR_ROLES, WASTE_BANK_ROLES, UserRole
from ..models import User
from ..services.converters import profile_response
from ..services.profiles import CUSTOMER, INDUSTRY, WASTE_BANK, WASTE_COLLECTOR, ProfileKind, ProfileService
from ..utils import ensure_owner, get_current_user, parse_object_id, require_roles

router = APIRouter(prefix="/api", tags=["profiles"])

admin_user = require_roles()


def add_profile_routes(prefix: str, kind: ProfileKind, reader, writer) -> None:
    """GET by user id, PUT by profile id and the admin DELETE for one role group."""
    update_model = kind.update

    async def get_profile(user_id: str, current_user: User = Depends(reader)):
        service = ProfileService(get_database())
        doc = await service.get_by_user(kind, parse_object_id(user_id, "user_id"))
        return {"data": profile_response(kind.response, doc, await service.owner(doc))}

    async def update_profile(profile_id: str, request: update_model, current_user: User = Depends(writer)):
        service = ProfileService(get_database())
        existing = await service.get(kind, parse_object_id(profile_id))
        ensure_owner(existing["user_id"], current_user)
        doc = await service.update(kind, existing["_id"], request)
        return {"data": profile_response(kind.response, doc, await service.owner(doc))}

    async def delete_profile(profile_id: str, current_user: User = Depends(admin_user)):
        await ProfileService(get_database()).delete(kind, parse_object_id(profile_id))
        return {"data": True}

    router.add_api_route(f"/{prefix}/profiles/{{user_id}}", get_profile, methods=["GET"])
    router.add_api_route(f"/{prefix}/profiles/{{profile_id}}", update_profile, methods=["PUT"])
    router.add_api_route(f"/admin/{prefix}/profiles/{{profile_id}}", delete_profile, methods=["DELETE"])


customer_only = require_roles(UserRole.CUSTOMER)
bank_only = require_roles(*WASTE_BANK_ROLES)
# Banks read and manage the collectors working for them
collector_or_bank = require_roles(*COLLECTOR_ROLES, *WASTE_BANK_ROLES)
industry_only = require_roles(UserRole.INDUSTRY)

add_profile_routes("customer", CUSTOMER, customer_only, customer_only)
# Bank profiles are public to every signed-in user
add_profile_routes("waste-bank", WASTE_BANK, get_current_user, bank_only)
add_profile_routes("waste-collector", WASTE_COLLECTOR, collector_or_bank, collector_or_bank)
add_profile_routes("industry", INDUSTRY, industry_only, industry_only)
