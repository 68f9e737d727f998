from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, Query

from ..config import Settings, get_settings
from ..database import get_database
from ..enums import COLLECTOR_ROLES, WASTE_BANK_ROLES, UserRole
from ..models import User
from ..schemas import (
    AssignCollectorByWasteTypeRequest,
    CompleteRequest,
    StatusUpdate,
    WasteTransferRequestCreate,
    WasteTransferRequestUpdate,
)
from ..services.catalog import CatalogService
from ..services.converters import transfer_item_response, transfer_request_response
from ..services.users import UserService
from ..services.waste_transfer import WasteTransferRequestService
from ..utils import (
    acting_user_id,
    ensure_owner,
    ensure_participant,
    get_current_user,
    paging,
    parse_object_id,
    parse_optional_object_id,
    require_roles,
)

router = APIRouter(prefix="/api", tags=["waste_transfer_requests"])

admin_user = require_roles()
# Both ends of a transfer: a waste bank ships, a bank or an industry receives
party_user = require_roles(*WASTE_BANK_ROLES, UserRole.INDUSTRY)
courier_user = require_roles(*COLLECTOR_ROLES, *WASTE_BANK_ROLES, UserRole.INDUSTRY)


def _service(settings: Settings) -> WasteTransferRequestService:
    return WasteTransferRequestService(get_database(), settings.timezone)


async def _item_responses(db, items: List[dict]):
    waste_types = await CatalogService(db).waste_types_by_id(item["waste_type_id"] for item in items)
    return [transfer_item_response(item, waste_types.get(item["waste_type_id"])) for item in items]


async def _request_responses(db, entries: List[Tuple[dict, Optional[float]]]):
    users = await UserService(db).find_many(
        uid for doc, _ in entries for uid in (doc["source_user_id"], doc["destination_user_id"])
    )
    return [
        transfer_request_response(
            doc,
            distance=distance,
            source_user=users.get(doc["source_user_id"]),
            destination_user=users.get(doc["destination_user_id"]),
        )
        for doc, distance in entries
    ]


async def _detail(db, doc: dict, distance: Optional[float] = None, items: Optional[List[dict]] = None):
    response = (await _request_responses(db, [(doc, distance)]))[0]
    if items is not None:
        response.items = await _item_responses(db, items)
    return response


@router.get("/waste-transfer-requests")
async def list_waste_transfer_requests(
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    source_user_id: Optional[str] = None,
    destination_user_id: Optional[str] = None,
    form_type: Optional[str] = None,
    status: Optional[str] = None,
    appointment_date: Optional[str] = None,
    latitude: Optional[float] = Query(None, ge=-90, le=90),
    longitude: Optional[float] = Query(None, ge=-180, le=180),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    entries, total = await _service(settings).search(
        page,
        size,
        source_user_id=parse_optional_object_id(source_user_id, "source_user_id"),
        destination_user_id=parse_optional_object_id(destination_user_id, "destination_user_id"),
        form_type=form_type,
        status=status,
        appointment_date=appointment_date,
        latitude=latitude,
        longitude=longitude,
    )
    return {"data": await _request_responses(get_database(), entries), "paging": paging(page, size, total)}


@router.get("/waste-transfer-requests/{request_id}")
async def get_waste_transfer_request(
    request_id: str,
    latitude: Optional[float] = Query(None, ge=-90, le=90),
    longitude: Optional[float] = Query(None, ge=-180, le=180),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    doc, distance, items = await _service(settings).get(parse_object_id(request_id), latitude, longitude)
    return {"data": await _detail(get_database(), doc, distance, items)}


@router.post("/waste-bank/waste-transfer-requests")
async def create_waste_transfer_request(
    request: WasteTransferRequestCreate,
    current_user: User = Depends(require_roles(*WASTE_BANK_ROLES)),
    settings: Settings = Depends(get_settings),
):
    source_user_id = acting_user_id(current_user, request.source_user_id, "source_user_id")
    service = _service(settings)
    doc = await service.create(source_user_id, request)
    _, _, items = await service.get(doc["_id"])
    return {"data": await _detail(get_database(), doc, items=items)}


async def update_waste_transfer_status(
    request_id: str,
    request: StatusUpdate,
    current_user: User = Depends(party_user),
    settings: Settings = Depends(get_settings),
):
    service = _service(settings)
    existing, _, _ = await service.get(parse_object_id(request_id))
    ensure_participant(current_user, existing["source_user_id"], existing["destination_user_id"])
    doc = await service.update_status(existing["_id"], request.status)
    return {"data": await _detail(get_database(), doc)}


async def assign_waste_transfer_collector(
    request_id: str,
    request: AssignCollectorByWasteTypeRequest,
    current_user: User = Depends(party_user),
    settings: Settings = Depends(get_settings),
):
    """The destination states what it accepts of each offered waste type."""
    service = _service(settings)
    existing, _, _ = await service.get(parse_object_id(request_id))
    ensure_owner(existing["destination_user_id"], current_user)
    doc = await service.assign_collector_by_waste_type(existing["_id"], request)
    _, _, items = await service.get(doc["_id"])
    return {"data": await _detail(get_database(), doc, items=items)}


async def complete_waste_transfer_request(
    request_id: str,
    request: CompleteRequest,
    current_user: User = Depends(courier_user),
    settings: Settings = Depends(get_settings),
):
    service = _service(settings)
    existing, _, _ = await service.get(parse_object_id(request_id))
    ensure_participant(
        current_user,
        existing["source_user_id"],
        existing["destination_user_id"],
        existing.get("assigned_collector_id"),
    )
    doc = await service.complete(existing["_id"], request)
    _, _, items = await service.get(doc["_id"])
    return {"data": await _detail(get_database(), doc, items=items)}


for prefix in ("/waste-bank", "/industry"):
    router.add_api_route(
        f"{prefix}/waste-transfer-requests/{{request_id}}", update_waste_transfer_status, methods=["PUT"]
    )
    router.add_api_route(
        f"{prefix}/waste-transfer-requests/{{request_id}}/assign-collector",
        assign_waste_transfer_collector,
        methods=["PUT"],
    )

for prefix in ("/waste-collector", "/industry"):
    router.add_api_route(
        f"{prefix}/waste-transfer-requests/{{request_id}}/complete",
        complete_waste_transfer_request,
        methods=["PUT"],
    )


@router.put("/admin/waste-transfer-requests/{request_id}")
async def update_waste_transfer_request(
    request_id: str,
    request: WasteTransferRequestUpdate,
    current_user: User = Depends(admin_user),
    settings: Settings = Depends(get_settings),
):
    doc = await _service(settings).update(parse_object_id(request_id), request)
    return {"data": await _detail(get_database(), doc)}


@router.delete("/admin/waste-transfer-requests/{request_id}")
async def delete_waste_transfer_request(
    request_id: str,
    current_user: User = Depends(admin_user),
    settings: Settings = Depends(get_settings),
):
    await _service(settings).delete(parse_object_id(request_id))
    return {"data": True}


# Item offerings

@router.get("/waste-transfer-items")
async def list_waste_transfer_items(
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    transfer_request_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    items, total = await _service(settings).search_items(
        page, size, transfer_request_id=parse_optional_object_id(transfer_request_id, "transfer_request_id")
    )
    return {"data": await _item_responses(get_database(), items), "paging": paging(page, size, total)}


@router.get("/waste-transfer-items/{item_id}")
async def get_waste_transfer_item(
    item_id: str,
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    item = await _service(settings).get_item(parse_object_id(item_id))
    return {"data": (await _item_responses(get_database(), [item]))[0]}
