"""Shared test fixtures for SafeVoice."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import pytest
import pytest_asyncio
from mongomock_motor import AsyncMongoMockClient

from safevoice.clients.base import AttachmentData, SubmissionReceipt
from safevoice.models.notification import Notification
from safevoice.models.report import Report, ReportCategory, StatusUpdate
from safevoice.repositories.mongo import MongoKeyValueStore, ensure_indexes


class FakeSubmitter:
    """In-memory submitter that records calls and can fail or block on demand."""

    def __init__(self, *, tracking_code: str | None = "ABCD-12345", error: Exception | None = None):
        self.tracking_code = tracking_code
        self.error = error
        self.calls: list[tuple[Report, list[AttachmentData]]] = []
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()

    async def submit_report(self, report: Report, attachments: list[AttachmentData]) -> SubmissionReceipt:
        self.calls.append((report, attachments))
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return SubmissionReceipt(id=report.id, tracking_code=self.tracking_code, message="Received by service")


class FakeStatusFeed:
    """Status feed returning canned updates (or raising) per report id."""

    def __init__(self, updates: dict[str, StatusUpdate | None] | None = None):
        self.updates: dict[str, StatusUpdate | None] = dict(updates or {})
        self.errors: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}
        self.calls: list[str] = []

    async def fetch_latest_status(self, report_id: str) -> StatusUpdate | None:
        self.calls.append(report_id)
        delay = self.delays.get(report_id)
        if delay:
            await asyncio.sleep(delay)
        if report_id in self.errors:
            raise self.errors[report_id]
        return self.updates.get(report_id)


class RecordingDeliverer:
    """Deliverer that records alerts and badge pushes."""

    def __init__(self, *, authorized: bool = True):
        self.authorized = authorized
        self.delivered: list[tuple[Notification, int]] = []
        self.badges: list[int] = []

    async def is_authorized(self) -> bool:
        return self.authorized

    async def deliver(self, notification: Notification, badge: int) -> bool:
        self.delivered.append((notification, badge))
        return True

    async def set_badge_count(self, count: int) -> bool:
        self.badges.append(count)
        return True


class FailingStateStore:
    """Key-value store whose writes always fail."""

    def __init__(self) -> None:
        self.attempts: list[str] = []

    async def load(self, key: str) -> list[dict[str, Any]] | None:
        del key
        return None

    async def save(self, key: str, items: list[dict[str, Any]]) -> None:
        del items
        self.attempts.append(key)
        raise OSError("disk full")


class MutableClock:
    """Controllable UTC clock for time-dependent code."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def mongo_client() -> AsyncMongoMockClient:
    """Return an isolated async Mongo mock client per test."""
    return AsyncMongoMockClient()


@pytest_asyncio.fixture
async def mongo_db(mongo_client: AsyncMongoMockClient):
    """Return indexed test database instance."""
    db = mongo_client["safevoice_test"]
    await ensure_indexes(db)
    return db


@pytest.fixture
def state_store(mongo_db) -> MongoKeyValueStore:
    """Mongo key-value state store fixture."""
    return MongoKeyValueStore(mongo_db)


@pytest.fixture
def submitter() -> FakeSubmitter:
    return FakeSubmitter()


@pytest.fixture
def deliverer() -> RecordingDeliverer:
    return RecordingDeliverer()


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def create_test_report():
    """Factory for quickly creating Report fixtures."""

    def _create(
        *,
        content: str = "Someone at school keeps pushing me around.",
        category: ReportCategory = ReportCategory.BULLYING,
        is_anonymous: bool = True,
    ) -> Report:
        return Report(category=category, content=content, is_anonymous=is_anonymous)

    return _create


@pytest.fixture
def status_feed() -> FakeStatusFeed:
    return FakeStatusFeed()


@pytest.fixture
def failing_state_store() -> FailingStateStore:
    return FailingStateStore()
