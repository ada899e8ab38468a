"""Unit tests for the in-memory purchase store adapter."""

import asyncio
from datetime import timedelta

import pytest

from corn_gate.adapters.purchase_store.base import ClientPurchaseRecord
from corn_gate.adapters.purchase_store.in_memory import InMemoryPurchaseStore

COOLDOWN = timedelta(seconds=60)


@pytest.mark.asyncio
async def test_creates_record_on_first_consume(clock) -> None:
    store = InMemoryPurchaseStore()

    outcome = await store.consume("k", clock.now, COOLDOWN)

    assert outcome.allowed is True
    assert outcome.record == ClientPurchaseRecord("k", clock.start, 1)
    assert len(store) == 1


@pytest.mark.asyncio
async def test_blocks_within_cooldown(clock) -> None:
    store = InMemoryPurchaseStore()
    await store.consume("k", clock.now, COOLDOWN)

    blocked = await store.consume("k", clock.advance(59), COOLDOWN)

    assert blocked.allowed is False
    assert blocked.record.purchase_count == 1
    assert blocked.record.last_purchase_time == clock.start


@pytest.mark.asyncio
async def test_allows_after_cooldown(clock) -> None:
    store = InMemoryPurchaseStore()
    await store.consume("k", clock.now, COOLDOWN)

    allowed = await store.consume("k", clock.advance(60), COOLDOWN)

    assert allowed.allowed is True
    assert allowed.record.purchase_count == 2
    assert await store.get("k") == allowed.record


@pytest.mark.asyncio
async def test_isolated_by_key(clock) -> None:
    store = InMemoryPurchaseStore()

    assert (await store.consume("k1", clock.now, COOLDOWN)).allowed is True
    assert (await store.consume("k1", clock.now, COOLDOWN)).allowed is False
    assert (await store.consume("k2", clock.now, COOLDOWN)).allowed is True


@pytest.mark.asyncio
async def test_held_key_does_not_block_other_keys(clock) -> None:
    store = InMemoryPurchaseStore()
    async with store._key_lock("busy"):
        outcome = await asyncio.wait_for(store.consume("free", clock.now, COOLDOWN), timeout=1)
        assert outcome.allowed is True

        pending = asyncio.ensure_future(store.consume("busy", clock.now, COOLDOWN))
        await asyncio.sleep(0.01)
        assert not pending.done()

    assert (await pending).allowed is True
    assert store.active_locks == 0


@pytest.mark.asyncio
async def test_get_unknown_key_returns_none() -> None:
    assert await InMemoryPurchaseStore().get("missing") is None


@pytest.mark.asyncio
async def test_key_locks_are_released_after_use(clock) -> None:
    store = InMemoryPurchaseStore()

    for i in range(20):
        await store.consume(f"k{i}", clock.now, COOLDOWN)

    assert len(store) == 20
    assert store.active_locks == 0


@pytest.mark.asyncio
async def test_key_lock_released_after_contended_burst(clock) -> None:
    store = InMemoryPurchaseStore()

    outcomes = await asyncio.gather(*(store.consume("k", clock.now, COOLDOWN) for _ in range(30)))

    assert sum(o.allowed for o in outcomes) == 1
    assert store.active_locks == 0
