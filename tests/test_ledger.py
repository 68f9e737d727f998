import pytest
from bson import ObjectId

from wastetrack.enums import TransactionType, UserRole
from wastetrack.errors import InsufficientFundsError, NotFoundError
from wastetrack.schemas import SalaryTransactionCreate, SalaryTransactionUpdate
from wastetrack.services.ledger import SalaryTransactionService


def _transfer(receiver: dict, amount: int, **fields) -> SalaryTransactionCreate:
    return SalaryTransactionCreate(
        receiver_id=str(receiver["_id"]),
        amount=amount,
        transaction_type=TransactionType.SALARY,
        **fields,
    )


async def test_transfer_moves_balance_and_records_it(db, make_user):
    bank = await make_user(UserRole.WASTE_BANK_UNIT, balance=1000)
    collector = await make_user(UserRole.WASTE_COLLECTOR_UNIT, balance=50)

    doc = await SalaryTransactionService(db).create(bank["_id"], _transfer(collector, 300, notes="March salary"))

    assert doc["amount"] == 300
    assert doc["transaction_type"] == "salary"
    assert doc["status"] == "pending"
    assert (await db.users.find_one({"_id": bank["_id"]}))["balance"] == 700
    assert (await db.users.find_one({"_id": collector["_id"]}))["balance"] == 350
    assert await db.salary_transactions.count_documents({}) == 1


async def test_transfer_of_whole_balance_is_allowed(db, make_user):
    bank = await make_user(UserRole.WASTE_BANK_UNIT, balance=100)
    collector = await make_user(UserRole.WASTE_COLLECTOR_UNIT)

    await SalaryTransactionService(db).create(bank["_id"], _transfer(collector, 100))

    assert (await db.users.find_one({"_id": bank["_id"]}))["balance"] == 0


async def test_insufficient_balance_changes_nothing(db, make_user):
    bank = await make_user(UserRole.WASTE_BANK_UNIT, balance=100)
    collector = await make_user(UserRole.WASTE_COLLECTOR_UNIT, balance=10)

    with pytest.raises(InsufficientFundsError) as exc_info:
        await SalaryTransactionService(db).create(bank["_id"], _transfer(collector, 101))

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "Insufficient balance"
    assert (await db.users.find_one({"_id": bank["_id"]}))["balance"] == 100
    assert (await db.users.find_one({"_id": collector["_id"]}))["balance"] == 10
    assert await db.salary_transactions.count_documents({}) == 0


async def test_unknown_receiver_is_not_found(db, make_user):
    bank = await make_user(UserRole.WASTE_BANK_UNIT, balance=100)
    ghost = {"_id": ObjectId()}

    with pytest.raises(NotFoundError) as exc_info:
        await SalaryTransactionService(db).create(bank["_id"], _transfer(ghost, 10))

    assert exc_info.value.detail == "Receiver not found"
    assert (await db.users.find_one({"_id": bank["_id"]}))["balance"] == 100


async def test_update_never_touches_balances(db, make_user):
    bank = await make_user(UserRole.WASTE_BANK_UNIT, balance=500)
    collector = await make_user(UserRole.WASTE_COLLECTOR_UNIT)
    service = SalaryTransactionService(db)
    doc = await service.create(bank["_id"], _transfer(collector, 200))

    updated = await service.update(doc["_id"], SalaryTransactionUpdate(status="paid", notes="settled"))

    assert updated["status"] == "paid"
    assert updated["notes"] == "settled"
    assert updated["amount"] == 200
    assert (await db.users.find_one({"_id": bank["_id"]}))["balance"] == 300


async def test_search_filters_notes_case_insensitively(db, make_user):
    bank = await make_user(UserRole.WASTE_BANK_UNIT, balance=500)
    collector = await make_user(UserRole.WASTE_COLLECTOR_UNIT)
    service = SalaryTransactionService(db)
    await service.create(bank["_id"], _transfer(collector, 10, notes="April bonus"))
    await service.create(bank["_id"], _transfer(collector, 20, notes="weekly pay"))

    docs, total = await service.search(1, 10, notes="BONUS")

    assert total == 1
    assert docs[0]["amount"] == 10
