"""Repository interfaces and concrete data access helpers."""

from safevoice.repositories.base import (
    ACTIVE_REPORTS_KEY,
    DRAFT_REPORTS_KEY,
    PENDING_NOTIFICATIONS_KEY,
    READ_NOTIFICATIONS_KEY,
    KeyValueStore,
)
from safevoice.repositories.mongo import (
    MongoKeyValueStore,
    create_mongo_client,
    ensure_indexes,
    get_database,
)

__all__ = [
    "ACTIVE_REPORTS_KEY",
    "DRAFT_REPORTS_KEY",
    "KeyValueStore",
    "MongoKeyValueStore",
    "PENDING_NOTIFICATIONS_KEY",
    "READ_NOTIFICATIONS_KEY",
    "create_mongo_client",
    "ensure_indexes",
    "get_database",
]
