from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..database import get_database
from ..enums import WASTE_BANK_ROLES
from ..models import User
from ..schemas import SalaryTransactionCreate, SalaryTransactionUpdate
from ..services.converters import salary_transaction_response
from ..services.ledger import SalaryTransactionService
from ..utils import (
    ensure_owner,
    get_current_user,
    paging,
    parse_object_id,
    parse_optional_object_id,
    require_roles,
)

router = APIRouter(prefix="/api", tags=["salary_transactions"])


@router.get("/salary-transactions")
async def list_salary_transactions(
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    sender_id: Optional[str] = None,
    receiver_id: Optional[str] = None,
    transaction_type: Optional[str] = None,
    status: Optional[str] = None,
    notes: Optional[str] = None,
    is_deleted: Optional[bool] = None,
    current_user: User = Depends(get_current_user),
):
    docs, total = await SalaryTransactionService(get_database()).search(
        page,
        size,
        sender_id=parse_optional_object_id(sender_id, "sender_id"),
        receiver_id=parse_optional_object_id(receiver_id, "receiver_id"),
        transaction_type=transaction_type,
        status=status,
        notes=notes,
        is_deleted=is_deleted,
    )
    return {"data": [salary_transaction_response(doc) for doc in docs], "paging": paging(page, size, total)}


@router.get("/salary-transactions/{transaction_id}")
async def get_salary_transaction(transaction_id: str, current_user: User = Depends(get_current_user)):
    doc = await SalaryTransactionService(get_database()).get(parse_object_id(transaction_id))
    return {"data": salary_transaction_response(doc)}


@router.post("/waste-bank/salary-transactions")
async def create_salary_transaction(
    request: SalaryTransactionCreate,
    current_user: User = Depends(require_roles(*WASTE_BANK_ROLES)),
):
    """The authenticated user pays the receiver out of their own balance."""
    doc = await SalaryTransactionService(get_database()).create(current_user.id, request)
    return {"data": salary_transaction_response(doc)}


@router.put("/waste-bank/salary-transactions/{transaction_id}")
async def update_salary_transaction(
    transaction_id: str,
    request: SalaryTransactionUpdate,
    current_user: User = Depends(require_roles(*WASTE_BANK_ROLES)),
):
    service = SalaryTransactionService(get_database())
    existing = await service.get(parse_object_id(transaction_id))
    ensure_owner(existing["sender_id"], current_user)
    doc = await service.update(existing["_id"], request)
    return {"data": salary_transaction_response(doc)}


@router.delete("/admin/salary-transactions/{transaction_id}")
async def delete_salary_transaction(transaction_id: str, current_user: User = Depends(require_roles())):
    await SalaryTransactionService(get_database()).delete(parse_object_id(transaction_id))
    return {"data": True}
