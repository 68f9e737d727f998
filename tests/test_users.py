import pytest

from wastetrack.enums import UserRole
from wastetrack.models import GeoPoint
from wastetrack.services.users import UserService

MONAS = (-6.1754, 106.8272)


@pytest.fixture
async def directory(make_user):
    return {
        "near": await make_user(
            UserRole.WASTE_BANK_UNIT, city="Jakarta Pusat", location=GeoPoint.from_lat_lng(-6.1862, 106.8341)
        ),
        "farther": await make_user(
            UserRole.WASTE_BANK_CENTRAL, city="Jakarta Timur", location=GeoPoint.from_lat_lng(-6.2000, 106.8700)
        ),
        "bandung": await make_user(
            UserRole.WASTE_BANK_UNIT, city="Bandung", location=GeoPoint.from_lat_lng(-6.9175, 107.6191)
        ),
        "unlocated": await make_user(UserRole.INDUSTRY, city="Jakarta Utara", is_accepting_customer=True),
    }


async def test_nearest_first_within_default_radius(db, directory):
    results, total = await UserService(db).search(1, 10, latitude=MONAS[0], longitude=MONAS[1])

    assert total == 3
    assert [doc["_id"] for doc, _ in results] == [
        directory["near"]["_id"],
        directory["farther"]["_id"],
        directory["unlocated"]["_id"],
    ]
    distances = [distance for _, distance in results]
    assert distances[0] < distances[1] < 10_000
    assert distances[2] is None


async def test_radius_narrows_results(db, directory):
    results, total = await UserService(db).search(
        1, 10, latitude=MONAS[0], longitude=MONAS[1], radius_meters=3_000
    )

    assert total == 2
    assert [doc["_id"] for doc, _ in results] == [directory["near"]["_id"], directory["unlocated"]["_id"]]


async def test_text_and_role_filters(db, directory):
    service = UserService(db)

    jakarta, total = await service.search(1, 10, city="jakarta")
    assert total == 3
    assert all(distance is None for _, distance in jakarta)

    units, _ = await service.search(1, 10, role=UserRole.WASTE_BANK_UNIT.value, city="JAKARTA")
    assert [doc["_id"] for doc, _ in units] == [directory["near"]["_id"]]

    accepting, _ = await service.search(1, 10, is_accepting_customer=True)
    assert [doc["_id"] for doc, _ in accepting] == [directory["unlocated"]["_id"]]


async def test_regex_characters_are_literal(db, directory):
    results, total = await UserService(db).search(1, 10, city=".*")

    assert (results, total) == ([], 0)
