from datetime import datetime

import pytest
from bson import ObjectId

from wastetrack.enums import UserRole
from wastetrack.errors import BadRequestError, ForbiddenError
from wastetrack.models import User
from wastetrack.utils import (
    acting_user_id,
    distance_to,
    ensure_owner,
    ensure_participant,
    haversine_distance,
    paging,
    parse_object_id,
    sort_by_distance,
    to_response,
)


def _user(role: UserRole) -> User:
    return User(username=role.value, email=f"{role.value}@wastetrack.id", password="x", role=role)


def test_haversine_known_distance():
    # Jakarta to Bandung is roughly 116 km as the crow flies, in metres
    assert haversine_distance(-6.2088, 106.8456, -6.9175, 107.6191) == pytest.approx(116_000, abs=3_000)
    assert haversine_distance(1.0, 1.0, 1.0, 1.0) == 0


def test_distance_to_needs_both_points():
    location = {"type": "Point", "coordinates": [106.8456, -6.2088]}

    assert distance_to(location, -6.2088, 106.8456) == pytest.approx(0)
    assert distance_to(location, None, 106.8) is None
    assert distance_to(None, -6.2, 106.8) is None


def test_sort_by_distance_orders_unknown_newest_first():
    docs = [
        {"_id": 1, "created_at": datetime(2024, 1, 1)},
        {"_id": 2, "created_at": datetime(2024, 1, 2)},
        {"_id": 3, "created_at": datetime(2024, 1, 3)},
        {"_id": 4, "created_at": datetime(2024, 1, 4)},
    ]
    distances = {1: None, 2: 5.0, 3: None, 4: 1.5}

    assert [doc["_id"] for doc in sort_by_distance(docs, distances)] == [4, 2, 3, 1]


def test_parse_object_id():
    value = ObjectId()
    assert parse_object_id(str(value)) == value
    with pytest.raises(BadRequestError) as exc_info:
        parse_object_id("nope", "receiver_id")
    assert exc_info.value.detail == "Invalid receiver_id"


def test_paging_rounds_up():
    assert paging(2, 10, 21) == {"page": 2, "size": 10, "total_item": 21, "total_page": 3}
    assert paging(1, 10, 0)["total_page"] == 0


def test_to_response_stringifies_ids():
    doc = {"_id": ObjectId(), "owner_id": ObjectId(), "password": "hash", "name": "x"}

    data = to_response(doc, exclude=("password",))

    assert data["id"] == str(doc["_id"])
    assert data["owner_id"] == str(doc["owner_id"])
    assert "password" not in data


def test_ownership_rules():
    owner = _user(UserRole.WASTE_BANK_UNIT)
    other = _user(UserRole.WASTE_BANK_UNIT)
    admin = _user(UserRole.ADMIN)

    ensure_owner(owner.id, owner)
    ensure_owner(owner.id, admin)
    with pytest.raises(ForbiddenError):
        ensure_owner(owner.id, other)

    ensure_participant(other, owner.id, other.id)
    with pytest.raises(ForbiddenError):
        ensure_participant(other, owner.id, None)


def test_acting_user_id_only_lets_admins_impersonate():
    customer = _user(UserRole.CUSTOMER)
    admin = _user(UserRole.ADMIN)
    target = ObjectId()

    assert acting_user_id(customer, str(target)) == customer.id
    assert acting_user_id(admin, str(target)) == target
    assert acting_user_id(admin, None) == admin.id
