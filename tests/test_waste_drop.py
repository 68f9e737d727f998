import pytest
from bson import ObjectId

from wastetrack.enums import DeliveryType, UserRole
from wastetrack.errors import BadRequestError, NotFoundError
from wastetrack.models import CustomerProfile, WasteBankPricedType
from wastetrack.schemas import (
    CompleteRequest,
    CompletionItemsInput,
    Location,
    WasteDropItemsInput,
    WasteDropRequestCreate,
    WasteDropRequestItemUpdate,
)
from wastetrack.services.waste_drop import WasteDropRequestService


@pytest.fixture
async def scenario(db, make_user, make_waste_type):
    customer = await make_user(UserRole.CUSTOMER, points=10)
    bank = await make_user(UserRole.WASTE_BANK_UNIT)
    collector = await make_user(UserRole.WASTE_COLLECTOR_UNIT)
    plastic = await make_waste_type("Plastic")
    paper = await make_waste_type("Paper")
    for waste_type, price in ((plastic, 2500), (paper, 1000)):
        priced = WasteBankPricedType(
            waste_bank_id=bank["_id"], waste_type_id=waste_type["_id"], custom_price_per_kgs=price
        )
        await db.waste_bank_priced_types.insert_one(priced.to_mongo())
    return {"customer": customer, "bank": bank, "collector": collector, "plastic": plastic, "paper": paper}


def _create_request(scenario, appointment, **fields) -> WasteDropRequestCreate:
    data = dict(
        delivery_type=DeliveryType.PICKUP,
        waste_bank_id=str(scenario["bank"]["_id"]),
        items=WasteDropItemsInput(
            waste_type_ids=[str(scenario["plastic"]["_id"]), str(scenario["paper"]["_id"])],
            quantities=[3, 1],
        ),
        **appointment,
    )
    data.update(fields)
    return WasteDropRequestCreate(**data)


def _completion(scenario, plastic_kg: float, paper_kg: float) -> CompleteRequest:
    return CompleteRequest(
        items=CompletionItemsInput(
            waste_type_ids=[str(scenario["plastic"]["_id"]), str(scenario["paper"]["_id"])],
            weights=[plastic_kg, paper_kg],
        )
    )


async def test_create_stores_request_and_items(db, tz, scenario, appointment):
    service = WasteDropRequestService(db, tz)

    doc = await service.create(scenario["customer"]["_id"], _create_request(scenario, appointment))

    assert doc["status"] == "pending"
    assert doc["delivery_type"] == "pickup"
    assert doc["appointment_start_time"] == appointment["appointment_start_time"]
    _, _, items = await service.get(doc["_id"])
    assert sorted(item["quantity"] for item in items) == [1, 3]


async def test_create_rejects_mismatched_item_lists(db, tz, scenario, appointment):
    request = _create_request(
        scenario,
        appointment,
        items=WasteDropItemsInput(waste_type_ids=[str(scenario["plastic"]["_id"])], quantities=[1, 2]),
    )

    with pytest.raises(BadRequestError):
        await WasteDropRequestService(db, tz).create(scenario["customer"]["_id"], request)
    assert await db.waste_drop_requests.count_documents({}) == 0


async def test_create_rejects_unknown_waste_type(db, tz, scenario, appointment):
    request = _create_request(
        scenario,
        appointment,
        items=WasteDropItemsInput(waste_type_ids=[str(ObjectId())], quantities=[1]),
    )

    with pytest.raises(NotFoundError):
        await WasteDropRequestService(db, tz).create(scenario["customer"]["_id"], request)


async def test_full_lifecycle_credits_points_and_stocks_bank(db, tz, scenario, appointment):
    service = WasteDropRequestService(db, tz)
    doc = await service.create(scenario["customer"]["_id"], _create_request(scenario, appointment))

    assigned = await service.assign_collector(doc["_id"], scenario["collector"]["_id"])
    assert assigned["status"] == "assigned"
    assert assigned["assigned_collector_id"] == scenario["collector"]["_id"]

    in_progress = await service.update_status(doc["_id"], "in_progress")
    assert in_progress["status"] == "in_progress"

    completed = await service.complete(doc["_id"], _completion(scenario, 2.5, 4.0))

    # 2.5 kg * 2500 + 4 kg * 1000
    assert completed["status"] == "completed"
    assert completed["total_price"] == 10250
    customer = await db.users.find_one({"_id": scenario["customer"]["_id"]})
    assert customer["points"] == 10 + 10250

    _, _, items = await service.get(doc["_id"])
    by_type = {item["waste_type_id"]: item for item in items}
    assert by_type[scenario["plastic"]["_id"]]["verified_subtotal"] == 6250
    assert by_type[scenario["plastic"]["_id"]]["verified_price_per_kgs"] == 2500
    assert by_type[scenario["paper"]["_id"]]["verified_weight"] == 4.0

    storage = await db.storages.find_one({"user_id": scenario["bank"]["_id"]})
    assert storage["is_for_recycled_material"] is False
    items = await db.storage_items.find({"storage_id": storage["_id"]}).to_list(length=None)
    stock = {item["waste_type_id"]: item["weight_kgs"] for item in items}
    assert stock == {scenario["plastic"]["_id"]: 2.5, scenario["paper"]["_id"]: 4.0}


async def test_completed_request_cannot_change_again(db, tz, scenario, appointment):
    service = WasteDropRequestService(db, tz)
    doc = await service.create(scenario["customer"]["_id"], _create_request(scenario, appointment))
    await service.complete(doc["_id"], _completion(scenario, 1, 1))

    with pytest.raises(BadRequestError):
        await service.update_status(doc["_id"], "cancelled")
    with pytest.raises(BadRequestError):
        await service.complete(doc["_id"], _completion(scenario, 1, 1))


async def test_status_update_cannot_complete(db, tz, scenario, appointment):
    service = WasteDropRequestService(db, tz)
    doc = await service.create(scenario["customer"]["_id"], _create_request(scenario, appointment))

    with pytest.raises(BadRequestError):
        await service.update_status(doc["_id"], "completed")
    with pytest.raises(BadRequestError):
        await service.update_status(doc["_id"], "")
    with pytest.raises(BadRequestError):
        await service.update_status(doc["_id"], "lost")


async def test_cancel_from_pending(db, tz, scenario, appointment):
    service = WasteDropRequestService(db, tz)
    doc = await service.create(scenario["customer"]["_id"], _create_request(scenario, appointment))

    cancelled = await service.update_status(doc["_id"], "cancelled")

    assert cancelled["status"] == "cancelled"


async def test_complete_without_bank_price_fails_before_writing(db, tz, scenario, appointment, make_waste_type):
    glass = await make_waste_type("Glass")
    service = WasteDropRequestService(db, tz)
    request = _create_request(
        scenario,
        appointment,
        items=WasteDropItemsInput(
            waste_type_ids=[str(scenario["plastic"]["_id"]), str(glass["_id"])], quantities=[1, 1]
        ),
    )
    doc = await service.create(scenario["customer"]["_id"], request)
    completion = CompleteRequest(
        items=CompletionItemsInput(
            waste_type_ids=[str(scenario["plastic"]["_id"]), str(glass["_id"])], weights=[1.0, 1.0]
        )
    )

    with pytest.raises(NotFoundError):
        await service.complete(doc["_id"], completion)

    unchanged, _, items = await service.get(doc["_id"])
    assert unchanged["status"] == "pending"
    assert all(item["verified_weight"] == 0 for item in items)
    assert (await db.users.find_one({"_id": scenario["customer"]["_id"]}))["points"] == 10


async def test_complete_requires_a_weight_per_item(db, tz, scenario, appointment):
    service = WasteDropRequestService(db, tz)
    doc = await service.create(scenario["customer"]["_id"], _create_request(scenario, appointment))
    partial = CompleteRequest(
        items=CompletionItemsInput(waste_type_ids=[str(scenario["plastic"]["_id"])], weights=[1.0])
    )

    with pytest.raises(BadRequestError):
        await service.complete(doc["_id"], partial)


async def test_search_by_distance_puts_unlocated_requests_last(db, tz, scenario, appointment):
    service = WasteDropRequestService(db, tz)
    far = await service.create(
        scenario["customer"]["_id"],
        _create_request(scenario, appointment, appointment_location=Location(latitude=-6.9, longitude=107.6)),
    )
    near = await service.create(
        scenario["customer"]["_id"],
        _create_request(scenario, appointment, appointment_location=Location(latitude=-6.2, longitude=106.8)),
    )
    nowhere = await service.create(scenario["customer"]["_id"], _create_request(scenario, appointment))

    entries, total = await service.search(1, 10, latitude=-6.2, longitude=106.8)

    assert total == 3
    assert [doc["_id"] for doc, _ in entries] == [near["_id"], far["_id"], nowhere["_id"]]
    assert entries[0][1] == pytest.approx(0.0, abs=1e-6)
    assert entries[2][1] is None


async def test_delete_hides_request_and_items(db, tz, scenario, appointment):
    service = WasteDropRequestService(db, tz)
    doc = await service.create(scenario["customer"]["_id"], _create_request(scenario, appointment))

    await service.delete(doc["_id"])

    with pytest.raises(NotFoundError):
        await service.get(doc["_id"])
    _, total = await service.search_items(1, 10, request_id=doc["_id"])
    assert total == 0


async def test_item_update_accepts_given_subtotal(db, tz, scenario, appointment):
    service = WasteDropRequestService(db, tz)
    doc = await service.create(scenario["customer"]["_id"], _create_request(scenario, appointment))
    _, _, items = await service.get(doc["_id"])

    updated = await service.update_item(items[0]["_id"], WasteDropRequestItemUpdate(verified_subtotal=1234))

    assert updated["verified_subtotal"] == 1234


async def test_complete_accumulates_profile_totals(db, tz, scenario, appointment):
    existing = CustomerProfile(user_id=scenario["customer"]["_id"], carbon_deficit=4, bags_stored=1).to_mongo()
    await db.customer_profiles.insert_one(existing)
    service = WasteDropRequestService(db, tz)
    doc = await service.create(scenario["customer"]["_id"], _create_request(scenario, appointment))
    await service.assign_collector(doc["_id"], scenario["collector"]["_id"])

    await service.complete(doc["_id"], _completion(scenario, 12.5, 8.0))

    customer = await db.customer_profiles.find_one({"user_id": scenario["customer"]["_id"]})
    assert customer["_id"] == existing["_id"]
    assert customer["carbon_deficit"] == 4 + 51
    assert customer["water_saved"] == 20500
    assert customer["bags_stored"] == 1 + 2
    assert customer["trees"] == 2

    # No profile existed for these two; completion opens them
    bank = await db.waste_bank_profiles.find_one({"user_id": scenario["bank"]["_id"]})
    assert bank["total_waste_weight"] == pytest.approx(20.5)
    assert bank["total_workers"] == 0
    collector = await db.waste_collector_profiles.find_one({"user_id": scenario["collector"]["_id"]})
    assert collector["total_waste_weight"] == pytest.approx(20.5)
