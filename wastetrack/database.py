import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import motor.motor_asyncio
from motor.motor_asyncio import AsyncIOMotorClientSession
from pymongo import ASCENDING, GEOSPHERE
from pymongo.errors import OperationFailure, PyMongoError

from .config import Settings, get_settings
from .errors import InternalError

logger = logging.getLogger(__name__)

# Global variables for database connection
client = None
database = None
use_transactions = False


def bind_database(mongo_client, database_name: str, transactions: bool = False) -> None:
    """Point the module-level handles at an already constructed client."""
    global client, database, use_transactions
    client = mongo_client
    database = mongo_client[database_name]
    use_transactions = transactions


async def connect_to_mongo(settings: Optional[Settings] = None):
    """Connect to MongoDB"""
    settings = settings or get_settings()
    try:
        mongo_client = motor.motor_asyncio.AsyncIOMotorClient(settings.mongodb_url)
        await mongo_client.admin.command("ping")
    except PyMongoError:
        logger.exception("MongoDB connection failed")
        raise
    bind_database(mongo_client, settings.database_name, settings.mongodb_use_transactions)
    logger.info("Connected to MongoDB database %s", settings.database_name)


async def close_mongo_connection():
    """Close MongoDB connection"""
    global client, database
    if client:
        client.close()
        logger.info("MongoDB connection closed")
    client = None
    database = None


def get_database():
    """Get the database instance"""
    return database


@asynccontextmanager
async def transaction() -> AsyncIterator[Optional[AsyncIOMotorClientSession]]:
    """Run a block of reads and writes as one unit.

    Yields the session to pass to every collection call made inside the block.
    Leaving the block normally commits; any exception aborts and propagates.
    When transactions are disabled (standalone server, tests) the yielded
    session is ``None`` and writes are applied as they happen.
    """
    try:
        if not use_transactions:
            yield None
        else:
            async with await client.start_session() as session:
                async with session.start_transaction():
                    yield session
    except PyMongoError as exc:
        logger.exception("Database transaction aborted")
        raise InternalError("Database operation failed") from exc


async def init_db():
    """Create the indexes the services rely on"""
    db = get_database()

    indexes = [
        ("users", [("email", ASCENDING)], {"unique": True}),
        ("users", [("username", ASCENDING)], {"unique": True}),
        ("users", [("location", GEOSPHERE)], {}),
        ("refresh_tokens", [("token", ASCENDING)], {"unique": True}),
        ("refresh_tokens", [("user_id", ASCENDING)], {}),
        (
            "collector_managements",
            [("waste_bank_id", ASCENDING), ("collector_id", ASCENDING)],
            {"unique": True},
        ),
        (
            "waste_bank_priced_types",
            [("waste_bank_id", ASCENDING), ("waste_type_id", ASCENDING)],
            {"unique": True},
        ),
        ("waste_drop_requests", [("appointment_location", GEOSPHERE)], {}),
        ("waste_drop_requests", [("created_at", ASCENDING)], {}),
        ("waste_drop_request_items", [("request_id", ASCENDING)], {}),
        ("waste_transfer_requests", [("appointment_location", GEOSPHERE)], {}),
        ("waste_transfer_requests", [("created_at", ASCENDING)], {}),
        ("waste_transfer_items", [("transfer_request_id", ASCENDING)], {}),
        ("storages", [("user_id", ASCENDING)], {}),
        ("customer_profiles", [("user_id", ASCENDING)], {"unique": True}),
        ("waste_bank_profiles", [("user_id", ASCENDING)], {"unique": True}),
        ("waste_collector_profiles", [("user_id", ASCENDING)], {"unique": True}),
        ("industry_profiles", [("user_id", ASCENDING)], {"unique": True}),
        ("storage_items", [("storage_id", ASCENDING), ("waste_type_id", ASCENDING)], {}),
    ]

    for collection, keys, options in indexes:
        try:
            await db[collection].create_index(keys, **options)
        except OperationFailure as exc:
            # Existing data can violate a new unique index; keep serving and report it
            logger.warning("Could not create index %s on %s: %s", keys, collection, exc)

    logger.info("Database initialization complete")
