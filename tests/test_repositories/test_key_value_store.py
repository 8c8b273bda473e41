"""Tests for the Mongo-backed key-value state store."""

from __future__ import annotations

import pytest

from safevoice.repositories.base import ACTIVE_REPORTS_KEY, DRAFT_REPORTS_KEY


@pytest.mark.asyncio
async def test_load_returns_none_for_missing_key(state_store) -> None:
    assert await state_store.load(ACTIVE_REPORTS_KEY) is None


@pytest.mark.asyncio
async def test_save_overwrites_whole_collection(state_store, mongo_db) -> None:
    await state_store.save(ACTIVE_REPORTS_KEY, [{"id": "a"}, {"id": "b"}])
    await state_store.save(ACTIVE_REPORTS_KEY, [{"id": "c"}])

    assert await state_store.load(ACTIVE_REPORTS_KEY) == [{"id": "c"}]
    assert await mongo_db["app_state"].count_documents({"key": ACTIVE_REPORTS_KEY}) == 1


@pytest.mark.asyncio
async def test_keys_are_independent(state_store) -> None:
    await state_store.save(ACTIVE_REPORTS_KEY, [{"id": "a"}])
    await state_store.save(DRAFT_REPORTS_KEY, [{"id": "d"}])

    await state_store.save(ACTIVE_REPORTS_KEY, [])

    assert await state_store.load(ACTIVE_REPORTS_KEY) == []
    assert await state_store.load(DRAFT_REPORTS_KEY) == [{"id": "d"}]


@pytest.mark.asyncio
async def test_non_list_payload_is_rejected_on_load(state_store, mongo_db) -> None:
    await mongo_db["app_state"].insert_one({"key": DRAFT_REPORTS_KEY, "items": "corrupt"})

    with pytest.raises(ValueError):
        await state_store.load(DRAFT_REPORTS_KEY)
