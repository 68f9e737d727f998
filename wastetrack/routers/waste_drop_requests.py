from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, Query

from ..config import Settings, get_settings
from ..database import get_database
from ..enums import COLLECTOR_ROLES, WASTE_BANK_ROLES, UserRole
from ..models import User
from ..schemas import (
    AssignCollectorRequest,
    CompleteRequest,
    StatusUpdate,
    WasteDropRequestCreate,
    WasteDropRequestItemUpdate,
    WasteDropRequestUpdate,
)
from ..services.catalog import CatalogService
from ..services.converters import drop_item_response, drop_request_response
from ..services.users import UserService
from ..services.waste_drop import WasteDropRequestService
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

router = APIRouter(prefix="/api", tags=["waste_drop_requests"])

bank_user = require_roles(*WASTE_BANK_ROLES)
collector_or_bank = require_roles(*COLLECTOR_ROLES, *WASTE_BANK_ROLES)
admin_user = require_roles()


def _service(settings: Settings) -> WasteDropRequestService:
    return WasteDropRequestService(get_database(), settings.timezone)


async def _item_responses(db, items: List[dict]):
    waste_types = await CatalogService(db).waste_types_by_id(item["waste_type_id"] for item in items)
    return [drop_item_response(item, waste_types.get(item["waste_type_id"])) for item in items]


async def _request_responses(db, entries: List[Tuple[dict, Optional[float]]]):
    users = await UserService(db).find_many(
        uid
        for doc, _ in entries
        for uid in (doc.get("customer_id"), doc.get("waste_bank_id"), doc.get("assigned_collector_id"))
    )
    return [
        drop_request_response(
            doc,
            distance=distance,
            customer=users.get(doc.get("customer_id")),
            waste_bank=users.get(doc.get("waste_bank_id")),
            collector=users.get(doc.get("assigned_collector_id")),
        )
        for doc, distance in entries
    ]


async def _detail(db, doc: dict, distance: Optional[float] = None, items: Optional[List[dict]] = None):
    response = (await _request_responses(db, [(doc, distance)]))[0]
    if items is not None:
        response.items = await _item_responses(db, items)
    return response


@router.get("/waste-drop-requests")
async def list_waste_drop_requests(
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    customer_id: Optional[str] = None,
    waste_bank_id: Optional[str] = None,
    assigned_collector_id: Optional[str] = None,
    status: Optional[str] = None,
    delivery_type: Optional[str] = None,
    appointment_date: Optional[str] = None,
    latitude: Optional[float] = Query(None, ge=-90, le=90),
    longitude: Optional[float] = Query(None, ge=-180, le=180),
    order_dir: str = Query("desc", pattern="^(asc|desc)$"),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    entries, total = await _service(settings).search(
        page,
        size,
        customer_id=parse_optional_object_id(customer_id, "customer_id"),
        waste_bank_id=parse_optional_object_id(waste_bank_id, "waste_bank_id"),
        assigned_collector_id=parse_optional_object_id(assigned_collector_id, "assigned_collector_id"),
        status=status,
        delivery_type=delivery_type,
        appointment_date=appointment_date,
        latitude=latitude,
        longitude=longitude,
        order_dir=order_dir,
    )
    return {"data": await _request_responses(get_database(), entries), "paging": paging(page, size, total)}


@router.get("/waste-drop-requests/{request_id}")
async def get_waste_drop_request(
    request_id: str,
    latitude: Optional[float] = Query(None, ge=-90, le=90),
    longitude: Optional[float] = Query(None, ge=-180, le=180),
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    doc, distance, items = await _service(settings).get(parse_object_id(request_id), latitude, longitude)
    return {"data": await _detail(get_database(), doc, distance, items)}


@router.post("/customer/waste-drop-requests")
async def create_waste_drop_request(
    request: WasteDropRequestCreate,
    current_user: User = Depends(require_roles(UserRole.CUSTOMER)),
    settings: Settings = Depends(get_settings),
):
    customer_id = acting_user_id(current_user, request.customer_id, "customer_id")
    service = _service(settings)
    doc = await service.create(customer_id, request)
    _, _, items = await service.get(doc["_id"])
    return {"data": await _detail(get_database(), doc, items=items)}


@router.put("/waste-bank/waste-drop-requests/{request_id}")
async def update_waste_drop_request_status(
    request_id: str,
    request: StatusUpdate,
    current_user: User = Depends(bank_user),
    settings: Settings = Depends(get_settings),
):
    service = _service(settings)
    existing, _, _ = await service.get(parse_object_id(request_id))
    ensure_owner(existing.get("waste_bank_id"), current_user)
    doc = await service.update_status(existing["_id"], request.status)
    return {"data": await _detail(get_database(), doc)}


@router.put("/waste-bank/waste-drop-requests/{request_id}/assign-collector")
async def assign_waste_drop_collector(
    request_id: str,
    request: AssignCollectorRequest,
    current_user: User = Depends(bank_user),
    settings: Settings = Depends(get_settings),
):
    service = _service(settings)
    existing, _, _ = await service.get(parse_object_id(request_id))
    ensure_owner(existing.get("waste_bank_id"), current_user)
    collector_id = parse_object_id(request.assigned_collector_id, "assigned_collector_id")
    doc = await service.assign_collector(existing["_id"], collector_id)
    return {"data": await _detail(get_database(), doc)}


@router.put("/waste-collector/waste-drop-requests/{request_id}/complete")
async def complete_waste_drop_request(
    request_id: str,
    request: CompleteRequest,
    current_user: User = Depends(collector_or_bank),
    settings: Settings = Depends(get_settings),
):
    """Weigh the items, credit the customer and stock the waste bank."""
    service = _service(settings)
    existing, _, _ = await service.get(parse_object_id(request_id))
    ensure_participant(current_user, existing.get("waste_bank_id"), existing.get("assigned_collector_id"))
    doc = await service.complete(existing["_id"], request)
    _, _, items = await service.get(doc["_id"])
    return {"data": await _detail(get_database(), doc, items=items)}


@router.put("/admin/waste-drop-requests/{request_id}")
async def update_waste_drop_request(
    request_id: str,
    request: WasteDropRequestUpdate,
    current_user: User = Depends(admin_user),
    settings: Settings = Depends(get_settings),
):
    doc = await _service(settings).update(parse_object_id(request_id), request)
    return {"data": await _detail(get_database(), doc)}


@router.delete("/admin/waste-drop-requests/{request_id}")
async def delete_waste_drop_request(
    request_id: str,
    current_user: User = Depends(admin_user),
    settings: Settings = Depends(get_settings),
):
    await _service(settings).delete(parse_object_id(request_id))
    return {"data": True}


# Line items

@router.get("/waste-drop-request-items")
async def list_waste_drop_request_items(
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    request_id: Optional[str] = None,
    waste_type_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    items, total = await _service(settings).search_items(
        page,
        size,
        request_id=parse_optional_object_id(request_id, "request_id"),
        waste_type_id=parse_optional_object_id(waste_type_id, "waste_type_id"),
    )
    return {"data": await _item_responses(get_database(), items), "paging": paging(page, size, total)}


@router.get("/waste-drop-request-items/{item_id}")
async def get_waste_drop_request_item(
    item_id: str,
    current_user: User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    item = await _service(settings).get_item(parse_object_id(item_id))
    return {"data": (await _item_responses(get_database(), [item]))[0]}


@router.put("/admin/waste-drop-request-items/{item_id}")
async def update_waste_drop_request_item(
    item_id: str,
    request: WasteDropRequestItemUpdate,
    current_user: User = Depends(admin_user),
    settings: Settings = Depends(get_settings),
):
    item = await _service(settings).update_item(parse_object_id(item_id), request)
    return {"data": (await _item_responses(get_database(), [item]))[0]}


@router.delete("/admin/waste-drop-request-items/{item_id}")
async def delete_waste_drop_request_item(
    item_id: str,
    current_user: User = Depends(admin_user),
    settings: Settings = Depends(get_settings),
):
    await _service(settings).delete_item(parse_object_id(item_id))
    return {"data": True}
