"""Session-aware step counting over incoming collar chunks.

The engine keeps one ``StepCounter`` per ``(device_id, session_id)`` and
serialises work on each pair with its own ``asyncio.Lock``. Chunks are
processed on a working copy of the session state; the copy only replaces the
cached state once the chunk record has been persisted, so a storage failure
can be retried without counting anything twice.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TypeVar

import structlog

from . import metrics
from .config import Settings, settings as default_settings
from .counter import StepCounter
from .decoder import decode_imu_payload
from .errors import MissingSessionError, StepEngineError, StorageError, UnknownSessionError
from .models import ChunkPayload, ChunkRecord, ChunkResult, SessionSummary
from .params import DEFAULT_PARAMS, StepCounterParams, StepCounterParamsUpdate
from .storage import StepStore
from .timestamps import (
    TemperatureReading,
    average_temperature,
    derive_mapping,
    map_samples,
    resolve_mapping,
    temperature_timeline,
)

logger = structlog.get_logger(__name__)

SessionKey = tuple[str, str]
T = TypeVar("T")


class SessionStepEngine:
    """Registry of per-session step counters backed by a ``StepStore``."""

    def __init__(self, store: StepStore, settings: Settings | None = None) -> None:
        self.store = store
        self.settings = settings or default_settings
        self._states: dict[SessionKey, StepCounter] = {}
        self._last_seen: dict[SessionKey, float] = {}
        self._locks: dict[SessionKey, asyncio.Lock] = {}
        self._lock_holders: dict[SessionKey, int] = {}
        self._eviction_task: asyncio.Task | None = None

    @property
    def cached_session_count(self) -> int:
        return len(self._states)

    def is_cached(self, device_id: str, session_id: str) -> bool:
        return (device_id, session_id) in self._states

    @asynccontextmanager
    async def _session_lock(self, key: SessionKey) -> AsyncIterator[None]:
        """Hold the key's lock, counting holders and waiters so eviction can drop it."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_holders[key] = self._lock_holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_holders[key] - 1
            if remaining:
                self._lock_holders[key] = remaining
            else:
                del self._lock_holders[key]

    def _touch(self, key: SessionKey) -> None:
        self._last_seen[key] = time.monotonic()

    async def _guarded(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Await a store call, converting collaborator failures to ``StorageError``."""
        try:
            return await awaitable
        except StepEngineError:
            raise
        except Exception as e:
            metrics.storage_failures_total.labels(operation=operation).inc()
            logger.error(
                "Store operation failed",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StorageError(f"{operation} failed: {e}") from e

    async def start(self) -> None:
        """Start the background idle-session sweep."""
        if self._eviction_task is None:
            self._eviction_task = asyncio.create_task(self._eviction_loop())
            logger.info(
                "Session eviction started",
                idle_seconds=self.settings.session_idle_seconds,
                interval_seconds=self.settings.eviction_interval_seconds,
            )

    async def stop(self) -> None:
        if self._eviction_task is None:
            return
        self._eviction_task.cancel()
        try:
            await self._eviction_task
        except asyncio.CancelledError:
            pass
        self._eviction_task = None
        logger.info("Session eviction stopped")

    async def _eviction_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.eviction_interval_seconds)
            try:
                await self.evict_idle()
            except Exception as e:
                logger.error("Idle session sweep failed", error=str(e))

    async def evict_idle(self, now: float | None = None) -> int:
        """Drop session states idle for longer than ``session_idle_seconds``."""
        now = time.monotonic() if now is None else now
        idle_limit = self.settings.session_idle_seconds
        evicted = 0

        for key, last_seen in list(self._last_seen.items()):
            if now - last_seen <= idle_limit:
                continue
            async with self._session_lock(key):
                # Activity may have arrived while waiting for the lock.
                seen = self._last_seen.get(key)
                if seen is None or now - seen <= idle_limit:
                    continue
                self._states.pop(key, None)
                del self._last_seen[key]
                evicted += 1
            if key not in self._lock_holders and key not in self._states:
                del self._locks[key]

        if evicted:
            metrics.cached_sessions.set(len(self._states))
            logger.info("Evicted idle sessions", count=evicted, remaining=len(self._states))
        return evicted

    async def _resolve_session(self, device_id: str, new_session: bool) -> str:
        if new_session:
            session_id = await self._guarded(
                "create_session",
                self.store.create_session(device_id, created_by="chunk"),
            )
            logger.info("New session started from chunk", device_id=device_id, session_id=session_id)
            return session_id

        session_id = await self._guarded("get_active_session", self.store.get_active_session(device_id))
        if session_id is None:
            raise MissingSessionError(device_id)
        return session_id

    async def _load_state(self, key: SessionKey) -> StepCounter:
        """Return the cached state or rebuild it from persisted records.

        Must be called with the key's lock held.
        """
        state = self._states.get(key)
        if state is not None:
            return state

        device_id, session_id = key
        params = await self._guarded("get_params", self.store.get_params(device_id, session_id))
        totals = await self._guarded(
            "get_session_totals",
            self.store.get_session_totals(device_id, session_id),
        )
        state = StepCounter(
            params=params or DEFAULT_PARAMS,
            step_count=totals.cumulative_steps,
            last_sample_number=totals.last_sample_number,
        )
        self._states[key] = state
        self._touch(key)
        metrics.cached_sessions.set(len(self._states))

        logger.info(
            "Session state initialised",
            device_id=device_id,
            session_id=session_id,
            cumulative_steps=totals.cumulative_steps,
            last_sample_number=totals.last_sample_number,
            stored_params=params is not None,
        )
        return state

    async def process_chunk(self, chunk: ChunkPayload, new_session: bool = False) -> ChunkResult:
        """Decode a chunk, count its new steps and persist the chunk record."""
        try:
            with metrics.chunk_processing_seconds.time():
                result = await self._process_chunk(chunk, new_session)
        except StepEngineError as e:
            metrics.chunks_processed_total.labels(outcome=type(e).__name__).inc()
            raise

        metrics.chunks_processed_total.labels(outcome="success").inc()
        metrics.steps_counted_total.inc(result.steps_in_chunk)
        return result

    async def _process_chunk(self, chunk: ChunkPayload, new_session: bool) -> ChunkResult:
        samples = decode_imu_payload(chunk.imu_data)
        device_id = chunk.device_id
        session_id = await self._resolve_session(device_id, new_session)

        fresh = derive_mapping(chunk.real_time, chunk.start_sample, self.settings.nominal_period_ms)
        if fresh is not None:
            await self._guarded("save_mapping", self.store.save_mapping(device_id, fresh))
            persisted = None
        else:
            persisted = await self._guarded("get_mapping", self.store.get_mapping(device_id))
        mapping = resolve_mapping(fresh, persisted)
        mapped = map_samples(samples, mapping)

        if chunk.chunk_key:
            chunk_key = chunk.chunk_key
        elif samples:
            chunk_key = f"chunk_{samples[0].sample_number}"
        else:
            chunk_key = f"chunk_{round(time.time() * 1000)}"

        key = (device_id, session_id)
        async with self._session_lock(key):
            state = await self._load_state(key)
            working = state.snapshot()

            steps_before = working.step_count
            running_before = working.running_steps
            shake_before = working.leg_shake_removed

            combined = working.previous_samples + mapped
            accepted = working.ingest(combined)
            skipped = len(mapped) - accepted
            if skipped > 0:
                metrics.samples_deduplicated_total.inc(skipped)

            result = ChunkResult(
                steps_in_chunk=working.step_count - steps_before,
                cumulative_steps=working.step_count,
                running_steps=working.running_steps - running_before,
                shake_removed=working.leg_shake_removed - shake_before,
                samples_processed=accepted,
                last_sample_number=working.last_sample_number,
                temp_avg_c=average_temperature(chunk.temp_data),
                session_id_used=session_id,
                received_at=datetime.now(UTC),
            )
            record = ChunkRecord(
                device_id=device_id,
                session_id=session_id,
                chunk_key=chunk_key,
                start_sample=chunk.start_sample,
                num_samples=len(samples),
                nominal_period_ms=mapping.nominal_period_ms if mapping else self.settings.nominal_period_ms,
                real_time=chunk.real_time,
                temp_first_timestamp=chunk.temp_first_timestamp,
                temp_data=chunk.temp_data,
                raw_imu_base64=chunk.imu_data,
                output_metric=result,
            )
            chunk_id = await self._guarded("record_chunk", self.store.record_chunk(record))

            working.previous_samples = mapped
            self._states[key] = working
            self._touch(key)

        if result.running_steps:
            metrics.running_steps_total.inc(result.running_steps)

        logger.info(
            "Chunk processed",
            device_id=device_id,
            session_id=session_id,
            chunk_key=chunk_key,
            chunk_id=chunk_id,
            num_samples=len(samples),
            samples_processed=accepted,
            steps_in_chunk=result.steps_in_chunk,
            cumulative_steps=result.cumulative_steps,
            running_steps=result.running_steps,
            shake_removed=result.shake_removed,
        )
        return result.model_copy(update={"chunk_id": chunk_id})

    async def create_session(self, device_id: str) -> str:
        session_id = await self._guarded("create_session", self.store.create_session(device_id))
        logger.info("Session created", device_id=device_id, session_id=session_id)
        return session_id

    async def _require_session(self, device_id: str, session_id: str) -> None:
        exists = await self._guarded(
            "session_exists",
            self.store.session_exists(device_id, session_id),
        )
        if not exists:
            raise UnknownSessionError(device_id, session_id)

    async def update_parameters(
        self,
        device_id: str,
        session_id: str,
        update: StepCounterParamsUpdate,
    ) -> StepCounterParams:
        """Merge a partial update into the stored parameters.

        Raises pydantic's ``ValidationError`` when the merged record is
        invalid. The session's cached state is dropped so the next chunk is
        counted with the new parameters.
        """
        await self._require_session(device_id, session_id)

        current = await self._guarded("get_params", self.store.get_params(device_id, session_id))
        params = (current or DEFAULT_PARAMS).merged(update)
        await self._guarded("save_params", self.store.save_params(device_id, session_id, params))

        key = (device_id, session_id)
        async with self._session_lock(key):
            dropped = self._states.pop(key, None) is not None
            self._last_seen.pop(key, None)
        metrics.cached_sessions.set(len(self._states))

        logger.info(
            "Step counter parameters updated",
            device_id=device_id,
            session_id=session_id,
            changed=sorted(update.model_dump(exclude_none=True)),
            cached_state_dropped=dropped,
        )
        return params

    async def get_parameters(
        self,
        device_id: str,
        session_id: str | None = None,
    ) -> tuple[str, StepCounterParams, bool]:
        """Return ``(session_id, params, stored)``; defaults when nothing is stored."""
        if session_id is None:
            session_id = await self._guarded(
                "get_active_session",
                self.store.get_active_session(device_id),
            )
            if session_id is None:
                raise MissingSessionError(device_id)
        else:
            await self._require_session(device_id, session_id)

        params = await self._guarded("get_params", self.store.get_params(device_id, session_id))
        if params is None:
            return session_id, DEFAULT_PARAMS, False
        return session_id, params, True

    async def session_summary(self, device_id: str, session_id: str) -> SessionSummary:
        await self._require_session(device_id, session_id)
        totals = await self._guarded(
            "get_session_totals",
            self.store.get_session_totals(device_id, session_id),
        )
        state = self._states.get((device_id, session_id))
        return SessionSummary(
            device_id=device_id,
            session_id=session_id,
            cumulative_steps=totals.cumulative_steps,
            last_sample_number=totals.last_sample_number,
            chunk_count=totals.chunk_count,
            cached=state is not None,
            running_steps=state.running_steps if state else None,
            shake_removed=state.leg_shake_removed if state else None,
        )

    async def temperature_timeline(
        self,
        device_id: str,
        session_id: str | None = None,
    ) -> list[TemperatureReading]:
        """Temperature readings for a device, ordered by time."""
        if session_id is not None:
            await self._require_session(device_id, session_id)

        chunks = await self._guarded(
            "list_temperature_chunks",
            self.store.list_temperature_chunks(device_id, session_id),
        )
        readings: list[TemperatureReading] = []
        for chunk in chunks:
            readings.extend(
                temperature_timeline(
                    chunk.temp_data,
                    chunk.temp_first_timestamp,
                    self.settings.temperature_interval_ms,
                )
            )
        readings.sort(key=lambda r: r.timestamp)
        return readings
