"""Integration tests for the delta cache over a real SQLite store."""
import asyncio
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from deltagov.core.errors import DeltaPendingError, DeltaStoreUnavailableError
from deltagov.db.models.delta import CachedDelta, DeltaStatus
from deltagov.services.bills.service import BillService
from deltagov.services.diff import engine as engine_module
from deltagov.services.diff.cache import DeltaCache
from deltagov.services.diff.engine import DiffEngine, DiffOptions
from deltagov.services.diff.models import PairKey
from deltagov.services.diff.store import SqlDeltaStore

pytestmark = pytest.mark.asyncio


def _cache(session_factory, **kwargs) -> DeltaCache:
    kwargs.setdefault("claim_wait_seconds", 2.0)
    kwargs.setdefault("claim_poll_seconds", 0.05)
    return DeltaCache(SqlDeltaStore(session_factory), DiffEngine(DiffOptions()), **kwargs)


def _counting_computer():
    return patch.object(
        engine_module, "compute_edit_script", wraps=engine_module.compute_edit_script
    )


async def _row_count(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(CachedDelta))).scalar_one()


async def test_sequential_calls_compute_once(session_factory, seeded):
    service_cache = _cache(session_factory)
    async with session_factory() as db:
        service = BillService(db, cache=service_cache, session_factory=session_factory)
        with _counting_computer() as computer:
            first = await service.compute_delta(seeded["ih"], seeded["rh"])
            second = await service.compute_delta(seeded["ih"], seeded["rh"])
    assert computer.call_count == 1
    assert first == second
    assert await _row_count(session_factory) == 1


async def test_concurrent_calls_share_one_computation(session_factory, seeded):
    cache = _cache(session_factory)
    key = cache.key_for(seeded["ih"], seeded["rh"])
    loads = 0

    async def load():
        nonlocal loads
        loads += 1
        await asyncio.sleep(0.05)
        return seeded["ih_text"], seeded["rh_text"]

    with _counting_computer() as computer:
        results = await asyncio.gather(*(cache.get_or_compute(key, load) for _ in range(8)))

    assert computer.call_count == 1
    assert loads == 1
    assert all(r == results[0] for r in results)
    assert await _row_count(session_factory) == 1


async def test_cancelled_caller_leaves_computation_running(session_factory, seeded):
    """A caller that gives up does not cancel the work; the row still gets filled."""
    cache = _cache(session_factory)
    key = cache.key_for(seeded["ih"], seeded["rh"])

    async def load():
        await asyncio.sleep(0.1)
        return seeded["ih_text"], seeded["rh_text"]

    with _counting_computer() as computer:
        caller = asyncio.create_task(cache.get_or_compute(key, load))
        await asyncio.sleep(0.02)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        stored = None
        for _ in range(100):
            stored = await cache.store.get(key)
            if stored is not None and stored.is_ready:
                break
            await asyncio.sleep(0.02)

        assert stored is not None and stored.is_ready
        again = await cache.get_or_compute(key, load)

    assert computer.call_count == 1
    assert again == stored.delta
    async with session_factory() as session:
        row = (await session.execute(select(CachedDelta))).scalar_one()
    assert row.status is DeltaStatus.READY


async def test_two_caches_contend_through_the_store(session_factory, seeded):
    """Two process-level caches on one database still compute a pair once."""
    first = _cache(session_factory, owner="worker-a")
    second = _cache(session_factory, owner="worker-b")
    key = first.key_for(seeded["ih"], seeded["rh"])

    async def load():
        await asyncio.sleep(0.05)
        return seeded["ih_text"], seeded["rh_text"]

    with _counting_computer() as computer:
        a, b = await asyncio.gather(
            first.get_or_compute(key, load), second.get_or_compute(key, load)
        )

    assert computer.call_count == 1
    assert a == b
    async with session_factory() as session:
        row = (await session.execute(select(CachedDelta))).scalar_one()
    assert row.status is DeltaStatus.READY
    assert row.pair_key == str(key)


async def test_direction_is_served_from_one_entry(session_factory, seeded):
    cache = _cache(session_factory)
    async with session_factory() as db:
        service = BillService(db, cache=cache, session_factory=session_factory)
        with _counting_computer() as computer:
            forward = await service.compute_delta(seeded["ih"], seeded["rh"])
            backward = await service.compute_delta(seeded["rh"], seeded["ih"])
    assert computer.call_count == 1
    assert (forward.from_version, forward.to_version) == (seeded["ih"], seeded["rh"])
    assert (backward.from_version, backward.to_version) == (seeded["rh"], seeded["ih"])
    assert forward.insertions == backward.deletions
    assert forward.deletions == backward.insertions
    assert await _row_count(session_factory) == 1


async def test_pending_claim_held_elsewhere_times_out(session_factory, seeded):
    store = SqlDeltaStore(session_factory)
    cache = _cache(session_factory, claim_wait_seconds=0.2, claim_poll_seconds=0.05)
    key = cache.key_for(seeded["ih"], seeded["rh"])
    assert await store.claim(key, "someone-else", stale_after=300)

    async def load():
        return seeded["ih_text"], seeded["rh_text"]

    with pytest.raises(DeltaPendingError) as info:
        await cache.get_or_compute(key, load)
    assert info.value.retry_after >= 1


async def test_stale_claim_is_taken_over(session_factory, seeded):
    store = SqlDeltaStore(session_factory)
    cache = _cache(session_factory, claim_stale_seconds=0.01)
    key = cache.key_for(seeded["ih"], seeded["rh"])
    assert await store.claim(key, "crashed-worker", stale_after=300)
    await asyncio.sleep(0.05)

    async def load():
        return seeded["ih_text"], seeded["rh_text"]

    delta = await cache.get_or_compute(key, load)
    assert delta.has_changes
    stored = await store.get(key)
    assert stored is not None and stored.is_ready


async def test_oversized_pair_is_approximate_and_not_persisted(session_factory, seeded):
    cache = DeltaCache(
        SqlDeltaStore(session_factory),
        DiffEngine(DiffOptions(size_limit_bytes=16)),
    )
    key = cache.key_for(seeded["ih"], seeded["rh"])

    async def load():
        return seeded["ih_text"], seeded["rh_text"]

    with _counting_computer() as computer:
        delta = await cache.get_or_compute(key, load)
    computer.assert_not_called()
    assert delta.is_approximate
    assert await _row_count(session_factory) == 0


class _FlakyStore(SqlDeltaStore):
    """Fails ``fill`` a set number of times, then behaves."""

    def __init__(self, session_factory, failures: int) -> None:
        super().__init__(session_factory)
        self.failures = failures

    async def fill(self, key, owner, delta):
        if self.failures:
            self.failures -= 1
            raise DeltaStoreUnavailableError(str(key))
        return await super().fill(key, owner, delta)


async def test_store_failure_is_retryable_and_keeps_the_result(session_factory, seeded):
    store = _FlakyStore(session_factory, failures=1)
    cache = DeltaCache(store, DiffEngine(DiffOptions()))
    key = cache.key_for(seeded["ih"], seeded["rh"])

    async def load():
        return seeded["ih_text"], seeded["rh_text"]

    with _counting_computer() as computer:
        with pytest.raises(DeltaStoreUnavailableError) as info:
            await cache.get_or_compute(key, load)
        assert info.value.retryable
        delta = await cache.get_or_compute(key, load)

    assert computer.call_count == 1
    stored = await store.get(key)
    assert stored is not None and stored.delta == delta


class _DownStore(SqlDeltaStore):
    async def get(self, key):
        raise DeltaStoreUnavailableError(str(key))


async def test_unreachable_store_surfaces_retryable_error(session_factory, seeded):
    cache = DeltaCache(_DownStore(session_factory), DiffEngine(DiffOptions()))
    key = cache.key_for(seeded["ih"], seeded["rh"])

    async def load():
        raise AssertionError("texts must not be loaded when the store is down")

    with pytest.raises(DeltaStoreUnavailableError):
        await cache.get_or_compute(key, load)


async def test_compute_failure_releases_the_claim(session_factory, seeded):
    cache = _cache(session_factory)
    key = cache.key_for(seeded["ih"], seeded["rh"])

    async def load():
        return seeded["ih_text"], seeded["rh_text"]

    with patch.object(engine_module, "compute_edit_script", side_effect=RuntimeError("boom")):
        with pytest.raises(RuntimeError):
            await cache.get_or_compute(key, load)
    assert await _row_count(session_factory) == 0

    delta = await cache.get_or_compute(key, load)
    assert delta.has_changes


async def test_pair_key_is_order_independent(session_factory):
    cache = _cache(session_factory)
    assert cache.key_for("b", "a") == cache.key_for("a", "b") == PairKey("a", "b", "line-c3")
