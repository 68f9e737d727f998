from datetime import datetime, timedelta

import httpx
import pytest
from mongomock_motor import AsyncMongoMockClient

from wastetrack import database
from wastetrack.config import get_settings
from wastetrack.enums import UserRole
from wastetrack.models import User, WasteCategory, WasteType
from wastetrack.utils import create_access_token


@pytest.fixture
def db():
    client = AsyncMongoMockClient()
    database.bind_database(client, "wastetrack_test", transactions=False)
    yield database.get_database()
    database.client = None
    database.database = None


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def tz(settings):
    return settings.timezone


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    async def factory(role: UserRole = UserRole.CUSTOMER, **fields) -> dict:
        counter["n"] += 1
        fields.setdefault("username", f"{role.value}-{counter['n']}")
        fields.setdefault("email", f"{role.value}-{counter['n']}@example.com")
        fields.setdefault("password", "not-a-real-hash")
        doc = User(role=role, **fields).to_mongo()
        await db.users.insert_one(doc)
        return doc

    return factory


@pytest.fixture
def make_waste_type(db):
    async def factory(name: str = "PET bottle") -> dict:
        category = WasteCategory(name=f"{name} category").to_mongo()
        await db.waste_categories.insert_one(category)
        doc = WasteType(name=name, category_id=category["_id"]).to_mongo()
        await db.waste_types.insert_one(doc)
        return doc

    return factory


@pytest.fixture
def auth_headers(settings):
    def build(user: dict) -> dict:
        token = create_access_token(
            {"sub": str(user["_id"]), "user_id": str(user["_id"]), "role": user["role"]}, settings
        )
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest.fixture
async def api(db):
    # ASGITransport skips lifespan events, so startup never dials a real server
    from wastetrack.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def appointment(tz):
    """Appointment fields one day ahead in the application timezone."""
    day = (datetime.now(tz) + timedelta(days=1)).strftime("%Y-%m-%d")
    offset = datetime.now(tz).strftime("%z")
    offset = f"{offset[:3]}:{offset[3:]}"
    return {
        "appointment_date": day,
        "appointment_start_time": f"09:00:00{offset}",
        "appointment_end_time": f"11:00:00{offset}",
    }

