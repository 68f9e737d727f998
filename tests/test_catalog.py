import pytest
from bson import ObjectId

from wastetrack.enums import UserRole
from wastetrack.errors import ConflictError, NotFoundError
from wastetrack.schemas import (
    WasteBankPricedTypeCreate,
    WasteCategoryCreate,
    WasteSubcategoryCreate,
    WasteTypeCreate,
)
from wastetrack.services.catalog import CatalogService, PricedTypeService


async def test_category_tree(db):
    service = CatalogService(db)
    category = await service.create_category(WasteCategoryCreate(name="Plastic"))
    subcategory = await service.create_subcategory(
        WasteSubcategoryCreate(name="PET", category_id=str(category["_id"]))
    )

    waste_type = await service.create_type(
        WasteTypeCreate(
            name="Clear PET bottle", category_id=str(category["_id"]), subcategory_id=str(subcategory["_id"])
        )
    )

    docs, total = await service.search_types(1, 10, name="pet")
    assert total == 1
    assert docs[0]["_id"] == waste_type["_id"]
    assert docs[0]["subcategory_id"] == subcategory["_id"]


async def test_type_needs_existing_category(db):
    with pytest.raises(NotFoundError):
        await CatalogService(db).create_type(WasteTypeCreate(name="Orphan", category_id=str(ObjectId())))


async def test_category_in_use_cannot_be_deleted(db, make_waste_type):
    waste_type = await make_waste_type("Glass")
    service = CatalogService(db)

    with pytest.raises(ConflictError):
        await service.delete_category(waste_type["category_id"])


async def test_require_waste_types_reports_missing(db, make_waste_type):
    known = await make_waste_type("Cardboard")
    service = CatalogService(db)

    found = await service.require_waste_types([known["_id"]])
    assert list(found) == [known["_id"]]
    with pytest.raises(NotFoundError):
        await service.require_waste_types([known["_id"], ObjectId()])


async def test_priced_type_is_unique_per_bank(db, make_user, make_waste_type):
    bank = await make_user(UserRole.WASTE_BANK_UNIT)
    waste_type = await make_waste_type("Aluminium can")
    service = PricedTypeService(db)
    request = WasteBankPricedTypeCreate(waste_type_id=str(waste_type["_id"]), custom_price_per_kgs=12000)

    doc = await service.create(bank["_id"], request)
    assert doc["custom_price_per_kgs"] == 12000

    with pytest.raises(ConflictError):
        await service.create(bank["_id"], request)

    other_bank = await make_user(UserRole.WASTE_BANK_CENTRAL)
    await service.create(other_bank["_id"], request)
    _, total = await service.search(1, 10, waste_type_id=waste_type["_id"])
    assert total == 2


async def test_batch_rejects_duplicates_without_writing(db, make_user, make_waste_type):
    bank = await make_user(UserRole.WASTE_BANK_UNIT)
    waste_type = await make_waste_type("Copper")
    entry = WasteBankPricedTypeCreate(waste_type_id=str(waste_type["_id"]), custom_price_per_kgs=50000)

    with pytest.raises(ConflictError):
        await PricedTypeService(db).create_batch(bank["_id"], [entry, entry])

    assert await db.waste_bank_priced_types.count_documents({}) == 0


async def test_batch_creates_every_entry(db, make_user, make_waste_type):
    bank = await make_user(UserRole.WASTE_BANK_UNIT)
    entries = []
    for name, price in (("Iron", 4000), ("Brass", 30000)):
        waste_type = await make_waste_type(name)
        entries.append(WasteBankPricedTypeCreate(waste_type_id=str(waste_type["_id"]), custom_price_per_kgs=price))

    docs = await PricedTypeService(db).create_batch(bank["_id"], entries)

    assert [doc["custom_price_per_kgs"] for doc in docs] == [4000, 30000]
