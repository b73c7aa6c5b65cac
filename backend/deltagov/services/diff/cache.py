"""
Delta cache: at most one computation per normalized pair key.

Within one process, concurrent callers for the same key share a single
``asyncio.Task`` and await it through ``asyncio.shield``, so a caller that
goes away never cancels the computation others are waiting on. Across
processes, the store's atomic ``claim`` elects one worker; the others poll
until the row turns ready, take over a stale claim, or give up with a
retryable ``DeltaPendingError``.

Results are always returned in the key's canonical orientation
(``key.low`` → ``key.high``); callers flip them with ``DeltaResult.reversed``.
"""

from __future__ import annotations

import asyncio
import os
import socket
import uuid
from collections.abc import Awaitable, Callable

import structlog

from deltagov.config.settings import Settings
from deltagov.core.errors import DeltaPendingError, DeltaStoreUnavailableError
from deltagov.core.metrics import DELTA_COMPUTE_SECONDS, DELTA_REQUESTS
from deltagov.services.diff.engine import DiffEngine, DiffOptions
from deltagov.services.diff.models import DeltaResult, PairKey
from deltagov.services.diff.store import DeltaStore
from deltagov.services.diff.tokenizer import ensure_text

_log = structlog.get_logger(__name__)

# Returns the texts of (key.low, key.high); only called on a cache miss
TextLoader = Callable[[], Awaitable[tuple[bytes | str, bytes | str]]]


def _default_owner() -> str:
    return f"{socket.gethostname()[:40]}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class DeltaCache:
    """Process-wide delta cache in front of a ``DeltaStore``."""

    def __init__(
        self,
        store: DeltaStore,
        engine: DiffEngine | None = None,
        *,
        claim_wait_seconds: float = 30.0,
        claim_poll_seconds: float = 0.25,
        claim_stale_seconds: float = 300.0,
        owner: str | None = None,
    ) -> None:
        self.store = store
        self.engine = engine or DiffEngine()
        self.owner = owner or _default_owner()
        self._claim_wait = claim_wait_seconds
        self._claim_poll = claim_poll_seconds
        self._claim_stale = claim_stale_seconds
        self._inflight: dict[PairKey, asyncio.Task[DeltaResult]] = {}
        # computed but not yet persisted because the store failed at fill time
        self._unpersisted: dict[PairKey, DeltaResult] = {}

    @classmethod
    def from_settings(cls, settings: Settings, store: DeltaStore) -> DeltaCache:
        return cls(
            store,
            DiffEngine(DiffOptions.from_settings(settings)),
            claim_wait_seconds=settings.diff_claim_wait_seconds,
            claim_poll_seconds=settings.diff_claim_poll_seconds,
            claim_stale_seconds=settings.diff_claim_stale_seconds,
        )

    @property
    def variant(self) -> str:
        return self.engine.options.variant

    def key_for(self, from_id: str, to_id: str) -> PairKey:
        return PairKey.of(from_id, to_id, self.variant)

    async def get_or_compute(self, key: PairKey, load_texts: TextLoader) -> DeltaResult:
        """
        Return the delta for ``key``, computing and persisting it on a miss.

        Raises:
            DeltaStoreUnavailableError: the store failed; retry later.
            DeltaPendingError: another worker is still computing this pair.
            InvalidTextError: a version's text is not valid UTF-8.
        """
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._resolve(key, load_texts), name=f"delta:{key}")
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        else:
            DELTA_REQUESTS.labels(outcome="joined").inc()
            _log.debug("delta_inflight_joined", pair_key=str(key))
        return await asyncio.shield(task)

    def _forget(self, key: PairKey, task: asyncio.Task[DeltaResult]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # mark the outcome as retrieved when every caller has gone away
        if not task.cancelled():
            task.exception()

    async def _resolve(self, key: PairKey, load_texts: TextLoader) -> DeltaResult:
        pending = self._unpersisted.get(key)
        if pending is not None:
            await self._fill(key, pending)
            del self._unpersisted[key]
            _log.info("delta_persisted_on_retry", pair_key=str(key))
            return pending

        try:
            stored = await self.store.get(key)
        except DeltaStoreUnavailableError:
            DELTA_REQUESTS.labels(outcome="store_unavailable").inc()
            raise
        if stored is not None and stored.is_ready:
            DELTA_REQUESTS.labels(outcome="hit").inc()
            _log.debug("delta_cache_hit", pair_key=str(key))
            return stored.delta  # type: ignore[return-value]

        raw_a, raw_b = await load_texts()
        text_a = ensure_text(raw_a)
        text_b = ensure_text(raw_b)

        if self.engine.is_oversized(text_a, text_b):
            DELTA_REQUESTS.labels(outcome="approximate").inc()
            return await asyncio.to_thread(self.engine.compute, key.low, key.high, text_a, text_b)

        ready = await self._acquire(key)
        if ready is not None:
            return ready

        try:
            with DELTA_COMPUTE_SECONDS.time():
                delta = await asyncio.to_thread(
                    self.engine.compute, key.low, key.high, text_a, text_b
                )
        except BaseException:
            await self._release_after_failure(key)
            raise

        try:
            written = await self._fill(key, delta)
        except DeltaStoreUnavailableError:
            self._unpersisted[key] = delta
            raise

        DELTA_REQUESTS.labels(outcome="computed").inc()
        _log.info(
            "delta_computed",
            pair_key=str(key),
            insertions=delta.insertions,
            deletions=delta.deletions,
            unchanged=delta.unchanged,
            hunks=len(delta.hunks),
        )
        if not written:
            # a stale-claim takeover raced us; serve whatever reached the store first
            stored = await self.store.get(key)
            if stored is not None and stored.is_ready:
                return stored.delta  # type: ignore[return-value]
        return delta

    async def _acquire(self, key: PairKey) -> DeltaResult | None:
        """
        Claim ``key`` for this worker.

        Returns None once the claim is held, or the stored delta if another
        worker finished it while we waited.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._claim_wait
        contended = False
        while True:
            try:
                if await self.store.claim(key, self.owner, self._claim_stale):
                    return None
                stored = await self.store.get(key)
            except DeltaStoreUnavailableError:
                DELTA_REQUESTS.labels(outcome="store_unavailable").inc()
                raise
            if stored is not None and stored.is_ready:
                DELTA_REQUESTS.labels(outcome="hit").inc()
                return stored.delta
            if not contended:
                contended = True
                _log.info(
                    "delta_claim_contended",
                    pair_key=str(key),
                    holder=stored.claim_owner if stored else None,
                )
            if loop.time() >= deadline:
                DELTA_REQUESTS.labels(outcome="pending").inc()
                raise DeltaPendingError(str(key), retry_after=max(1, round(self._claim_poll * 4)))
            await asyncio.sleep(self._claim_poll)

    async def _fill(self, key: PairKey, delta: DeltaResult) -> bool:
        try:
            return await self.store.fill(key, self.owner, delta)
        except DeltaStoreUnavailableError:
            DELTA_REQUESTS.labels(outcome="store_unavailable").inc()
            raise

    async def _release_after_failure(self, key: PairKey) -> None:
        try:
            await self.store.release(key, self.owner)
        except DeltaStoreUnavailableError:
            # the claim goes stale and is taken over later; the original error propagates
            _log.exception("delta_claim_release_failed", pair_key=str(key))
