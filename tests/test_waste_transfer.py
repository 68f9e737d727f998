import pytest

from wastetrack.enums import TransferFormType, UserRole
from wastetrack.errors import BadRequestError
from wastetrack.models import Storage, StorageItem
from wastetrack.schemas import (
    AssignCollectorByWasteTypeRequest,
    AssignWasteTypePricing,
    CompleteRequest,
    CompletionItemsInput,
    WasteTransferItemOfferingResponse,
    WasteTransferItemsInput,
    WasteTransferRequestCreate,
)
from wastetrack.services.waste_transfer import WasteTransferRequestService


@pytest.fixture
async def scenario(db, make_user, make_waste_type):
    bank = await make_user(UserRole.WASTE_BANK_CENTRAL)
    industry = await make_user(UserRole.INDUSTRY)
    collector = await make_user(UserRole.WASTE_COLLECTOR_CENTRAL)
    plastic = await make_waste_type("Plastic")
    metal = await make_waste_type("Metal")

    storage = Storage(user_id=bank["_id"], length=5, width=4, height=3).to_mongo()
    await db.storages.insert_one(storage)
    for waste_type, weight in ((plastic, 100.0), (metal, 40.0)):
        item = StorageItem(storage_id=storage["_id"], waste_type_id=waste_type["_id"], weight_kgs=weight)
        await db.storage_items.insert_one(item.to_mongo())

    return {
        "bank": bank,
        "industry": industry,
        "collector": collector,
        "plastic": plastic,
        "metal": metal,
        "storage": storage,
    }


async def _create(db, tz, scenario, appointment) -> dict:
    request = WasteTransferRequestCreate(
        destination_user_id=str(scenario["industry"]["_id"]),
        form_type=TransferFormType.INDUSTRY_REQUEST,
        source_phone_number="0811",
        destination_phone_number="0822",
        items=WasteTransferItemsInput(
            waste_type_ids=[str(scenario["plastic"]["_id"]), str(scenario["metal"]["_id"])],
            offering_weights=[60.5, 20.0],
            offering_prices_per_kgs=[3000, 8000],
        ),
        **appointment,
    )
    return await WasteTransferRequestService(db, tz).create(scenario["bank"]["_id"], request)


def _acceptance(scenario, plastic_kg: float, metal_kg: float, collector: bool = True):
    return AssignCollectorByWasteTypeRequest(
        assigned_collector_id=str(scenario["collector"]["_id"]) if collector else None,
        waste_types=[
            AssignWasteTypePricing(
                waste_type_id=str(scenario["plastic"]["_id"]), accepted_weight=plastic_kg, accepted_price_per_kgs=3200
            ),
            AssignWasteTypePricing(
                waste_type_id=str(scenario["metal"]["_id"]), accepted_weight=metal_kg, accepted_price_per_kgs=7500
            ),
        ],
    )


def _verification(scenario, plastic_kg: float, metal_kg: float) -> CompleteRequest:
    return CompleteRequest(
        items=CompletionItemsInput(
            waste_type_ids=[str(scenario["plastic"]["_id"]), str(scenario["metal"]["_id"])],
            weights=[plastic_kg, metal_kg],
        )
    )


async def _stock(db, storage_id) -> dict:
    items = await db.storage_items.find({"storage_id": storage_id}).to_list(length=None)
    return {item["waste_type_id"]: item["weight_kgs"] for item in items}


async def test_create_totals_offering(db, tz, scenario, appointment):
    doc = await _create(db, tz, scenario, appointment)

    assert doc["status"] == "pending"
    assert doc["total_weight"] == pytest.approx(80.5)
    # whole kilograms only: 60 * 3000 + 20 * 8000
    assert doc["total_price"] == 340000


async def test_assign_records_accepted_weights(db, tz, scenario, appointment):
    service = WasteTransferRequestService(db, tz)
    doc = await _create(db, tz, scenario, appointment)

    assigned = await service.assign_collector_by_waste_type(doc["_id"], _acceptance(scenario, 50.0, 20.0))

    assert assigned["status"] == "assigned"
    assert assigned["assigned_collector_id"] == scenario["collector"]["_id"]
    assert assigned["total_weight"] == pytest.approx(70.0)
    assert assigned["total_price"] == 50 * 3200 + 20 * 7500


async def test_assign_without_collector_is_allowed(db, tz, scenario, appointment):
    service = WasteTransferRequestService(db, tz)
    doc = await _create(db, tz, scenario, appointment)

    assigned = await service.assign_collector_by_waste_type(
        doc["_id"], _acceptance(scenario, 10.0, 10.0, collector=False)
    )

    assert assigned["status"] == "assigned"
    assert assigned["assigned_collector_id"] is None


async def test_assign_cannot_accept_more_than_offered(db, tz, scenario, appointment):
    service = WasteTransferRequestService(db, tz)
    doc = await _create(db, tz, scenario, appointment)

    with pytest.raises(BadRequestError):
        await service.assign_collector_by_waste_type(doc["_id"], _acceptance(scenario, 61.0, 20.0))

    unchanged, _, _ = await service.get(doc["_id"])
    assert unchanged["status"] == "pending"


async def test_assign_needs_pricing_for_every_item(db, tz, scenario, appointment):
    service = WasteTransferRequestService(db, tz)
    doc = await _create(db, tz, scenario, appointment)
    partial = AssignCollectorByWasteTypeRequest(
        waste_types=[
            AssignWasteTypePricing(
                waste_type_id=str(scenario["plastic"]["_id"]), accepted_weight=10, accepted_price_per_kgs=1
            )
        ]
    )

    with pytest.raises(BadRequestError) as exc_info:
        await service.assign_collector_by_waste_type(doc["_id"], partial)
    assert "Missing pricing" in exc_info.value.detail


async def test_status_update_only_allows_collecting_or_cancelled(db, tz, scenario, appointment):
    service = WasteTransferRequestService(db, tz)
    doc = await _create(db, tz, scenario, appointment)

    for status in ("completed", "assigned", "pending"):
        with pytest.raises(BadRequestError) as exc_info:
            await service.update_status(doc["_id"], status)
        assert exc_info.value.detail == "only collecting and cancelled status are allowed"

    cancelled = await service.update_status(doc["_id"], "cancelled")
    assert cancelled["status"] == "cancelled"
    with pytest.raises(BadRequestError):
        await service.update_status(doc["_id"], "collecting")


async def test_complete_moves_stock_and_settles_totals(db, tz, scenario, appointment):
    service = WasteTransferRequestService(db, tz)
    doc = await _create(db, tz, scenario, appointment)
    await service.assign_collector_by_waste_type(doc["_id"], _acceptance(scenario, 50.0, 20.0))
    await service.update_status(doc["_id"], "collecting")

    completed = await service.complete(doc["_id"], _verification(scenario, 48.0, 20.0))

    assert completed["status"] == "completed"
    assert completed["total_weight"] == pytest.approx(68.0)
    assert completed["total_price"] == int(48.0 * 3200) + int(20.0 * 7500)

    source = await _stock(db, scenario["storage"]["_id"])
    assert source[scenario["plastic"]["_id"]] == pytest.approx(50.0)
    assert source[scenario["metal"]["_id"]] == pytest.approx(20.0)

    destination_storage = await db.storages.find_one({"user_id": scenario["industry"]["_id"]})
    destination = await _stock(db, destination_storage["_id"])
    assert destination == {scenario["plastic"]["_id"]: 48.0, scenario["metal"]["_id"]: 20.0}

    _, _, items = await service.get(doc["_id"])
    plastic = next(item for item in items if item["waste_type_id"] == scenario["plastic"]["_id"])
    response = WasteTransferItemOfferingResponse(
        id=str(plastic["_id"]),
        transfer_request_id=str(plastic["transfer_request_id"]),
        waste_type_id=str(plastic["waste_type_id"]),
        accepted_weight=plastic["accepted_weight"],
        verified_weight=plastic["verified_weight"],
    )
    assert response.loss_weight == pytest.approx(2.0)


async def test_complete_rejects_weight_over_accepted(db, tz, scenario, appointment):
    service = WasteTransferRequestService(db, tz)
    doc = await _create(db, tz, scenario, appointment)
    await service.assign_collector_by_waste_type(doc["_id"], _acceptance(scenario, 50.0, 20.0))

    with pytest.raises(BadRequestError):
        await service.complete(doc["_id"], _verification(scenario, 50.5, 20.0))

    unchanged, _, _ = await service.get(doc["_id"])
    assert unchanged["status"] == "assigned"
    assert (await _stock(db, scenario["storage"]["_id"]))[scenario["plastic"]["_id"]] == 100.0


async def test_complete_requires_assignment_first(db, tz, scenario, appointment):
    service = WasteTransferRequestService(db, tz)
    doc = await _create(db, tz, scenario, appointment)

    with pytest.raises(BadRequestError):
        await service.complete(doc["_id"], _verification(scenario, 1.0, 1.0))


async def test_complete_fails_when_source_stock_is_short(db, tz, scenario, appointment):
    service = WasteTransferRequestService(db, tz)
    doc = await _create(db, tz, scenario, appointment)
    await service.assign_collector_by_waste_type(doc["_id"], _acceptance(scenario, 50.0, 20.0))
    await db.storage_items.update_many({"waste_type_id": scenario["metal"]["_id"]}, {"$set": {"weight_kgs": 5.0}})

    with pytest.raises(BadRequestError) as exc_info:
        await service.complete(doc["_id"], _verification(scenario, 50.0, 20.0))

    assert "Insufficient stock" in exc_info.value.detail
    assert (await _stock(db, scenario["storage"]["_id"]))[scenario["plastic"]["_id"]] == 100.0


def test_loss_weight_is_zero_until_verified():
    item = WasteTransferItemOfferingResponse(
        id="a", transfer_request_id="b", waste_type_id="c", accepted_weight=30.0, verified_weight=0
    )
    assert item.loss_weight == 0


def test_loss_weight_keeps_fractional_difference():
    item = WasteTransferItemOfferingResponse(
        id="a", transfer_request_id="b", waste_type_id="c", accepted_weight=120.5, verified_weight=118.0
    )
    assert item.loss_weight == pytest.approx(2.5)
    assert item.model_dump()["loss_weight"] == pytest.approx(2.5)


async def test_complete_adds_verified_weight_to_industry_profile(db, tz, scenario, appointment):
    service = WasteTransferRequestService(db, tz)
    doc = await _create(db, tz, scenario, appointment)
    await service.assign_collector_by_waste_type(doc["_id"], _acceptance(scenario, 50.0, 20.0))

    await service.complete(doc["_id"], _verification(scenario, 48.0, 20.0))

    profile = await db.industry_profiles.find_one({"user_id": scenario["industry"]["_id"]})
    assert profile["total_waste_weight"] == pytest.approx(68.0)
    assert profile["total_recycled_weight"] == 0
