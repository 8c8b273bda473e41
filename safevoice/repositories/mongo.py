"""MongoDB connection helpers and key-value state repository."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

STATE_COLLECTION = "app_state"


async def create_mongo_client(mongodb_uri: str) -> AsyncIOMotorClient:
    """Create and validate an async MongoDB client connection."""
    try:
        client = AsyncIOMotorClient(mongodb_uri)
        await client.admin.command("ping")
        return client
    except PyMongoError as exc:
        raise RuntimeError(f"Failed to connect to MongoDB at {mongodb_uri}: {exc}") from exc


def get_database(client: AsyncIOMotorClient, database_name: str) -> AsyncIOMotorDatabase:
    """Return configured MongoDB database handle."""
    return client[database_name]


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create required MongoDB indexes for the state collection."""
    try:
        await db[STATE_COLLECTION].create_index([("key", ASCENDING)], unique=True, name="uq_state_key")
    except PyMongoError as exc:
        raise RuntimeError(f"Failed to ensure MongoDB indexes: {exc}") from exc


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MongoKeyValueStore:
    """MongoDB-backed store holding one document per logical key."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db[STATE_COLLECTION]

    async def load(self, key: str) -> list[dict[str, Any]] | None:
        document = await self.collection.find_one({"key": key}, projection={"_id": 0, "items": 1})
        if document is None:
            return None
        items = document.get("items")
        if not isinstance(items, list):
            raise ValueError(f"Stored value for '{key}' is not a list")
        return [item for item in items if isinstance(item, dict)]

    async def save(self, key: str, items: list[dict[str, Any]]) -> None:
        await self.collection.replace_one(
            {"key": key},
            {"key": key, "items": items, "updated_at": _utc_now()},
            upsert=True,
        )
