import logging
from typing import List, Optional, Tuple

from bson import ObjectId

from ..database import transaction
from ..errors import InsufficientFundsError, NotFoundError
from ..models import SalaryTransaction
from ..repository import SalaryTransactionRepository, UserRepository
from ..schemas import SalaryTransactionCreate, SalaryTransactionUpdate
from ..utils import parse_object_id

logger = logging.getLogger(__name__)


class SalaryTransactionService:
    """Balance transfers between two users, recorded as salary transactions."""

    def __init__(self, db):
        self.users = UserRepository(db)
        self.transactions = SalaryTransactionRepository(db)

    async def create(self, sender_id: ObjectId, request: SalaryTransactionCreate) -> dict:
        """Move ``amount`` from sender to receiver and record it.

        Both users are resolved and the sender's balance checked before the
        first write; the two balance changes and the record insert commit
        together or not at all.
        """
        receiver_id = parse_object_id(request.receiver_id, "receiver_id")

        async with transaction() as session:
            sender = await self.users.find_by_id(sender_id, session=session)
            if not sender:
                raise NotFoundError("Sender not found")
            receiver = await self.users.find_by_id(receiver_id, session=session)
            if not receiver:
                raise NotFoundError("Receiver not found")

            if sender.get("balance", 0) < request.amount:
                logger.warning(
                    "Transfer of %s from %s rejected, balance is %s",
                    request.amount, sender_id, sender.get("balance", 0),
                )
                raise InsufficientFundsError()

            await self.users.increment(sender_id, {"balance": -request.amount}, session=session)
            await self.users.increment(receiver_id, {"balance": request.amount}, session=session)

            record = SalaryTransaction(
                sender_id=sender_id,
                receiver_id=receiver_id,
                amount=request.amount,
                transaction_type=request.transaction_type.value,
                status=request.status,
                notes=request.notes,
            )
            doc = await self.transactions.insert(record.to_mongo(), session=session)

        logger.info("Transferred %s from %s to %s", request.amount, sender_id, receiver_id)
        return doc

    async def get(self, transaction_id: ObjectId) -> dict:
        doc = await self.transactions.find_by_id(transaction_id)
        if not doc:
            raise NotFoundError("Salary transaction not found")
        return doc

    async def search(
        self,
        page: int,
        size: int,
        sender_id: Optional[ObjectId] = None,
        receiver_id: Optional[ObjectId] = None,
        transaction_type: Optional[str] = None,
        status: Optional[str] = None,
        notes: Optional[str] = None,
        is_deleted: Optional[bool] = None,
    ) -> Tuple[List[dict], int]:
        filters = {}
        if sender_id:
            filters["sender_id"] = sender_id
        if receiver_id:
            filters["receiver_id"] = receiver_id
        if transaction_type:
            filters["transaction_type"] = transaction_type
        if status:
            filters["status"] = status
        if notes:
            filters["notes"] = {"$regex": notes, "$options": "i"}
        if is_deleted is not None:
            filters["is_deleted"] = is_deleted
        return await self.transactions.search(filters, page, size, sort=[("created_at", -1)])

    async def update(self, transaction_id: ObjectId, request: SalaryTransactionUpdate) -> dict:
        """Only descriptive fields change; balances are never touched here."""
        async with transaction() as session:
            doc = await self.transactions.find_by_id(transaction_id, session=session)
            if not doc:
                raise NotFoundError("Salary transaction not found")
            fields = request.model_dump(exclude_none=True, mode="json")
            if fields:
                await self.transactions.update(transaction_id, fields, session=session)
            return await self.transactions.find_by_id(transaction_id, session=session)

    async def delete(self, transaction_id: ObjectId) -> None:
        async with transaction() as session:
            if not await self.transactions.find_by_id(transaction_id, session=session):
                raise NotFoundError("Salary transaction not found")
            await self.transactions.delete(transaction_id, session=session)
