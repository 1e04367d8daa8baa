"""Persistence interface the step engine depends on."""

import secrets
from abc import ABC, abstractmethod
from collections.abc import Collection

from ..models import ChunkRecord, SessionTotals, TemperatureChunk
from ..params import StepCounterParams
from ..timestamps import TimestampMapping

SESSION_ID_CANDIDATES = [str(k) * 3 for k in range(1, 10)]


def next_session_id(used: Collection[str]) -> str:
    """Pick the first free short id ("111".."999"), else a random hex id."""
    for candidate in SESSION_ID_CANDIDATES:
        if candidate not in used:
            return candidate
    return secrets.token_hex(12)


class StepStore(ABC):
    """Sessions, parameters, timestamp mappings and chunk records."""

    async def start(self) -> None:
        """Open connections or resources."""

    async def stop(self) -> None:
        """Release connections or resources."""

    async def ping(self) -> bool:
        return True

    @abstractmethod
    async def get_active_session(self, device_id: str) -> str | None:
        """Return the device's active session id, if any."""

    @abstractmethod
    async def create_session(self, device_id: str, created_by: str = "api") -> str:
        """Create and activate a session, deactivating the previous one."""

    @abstractmethod
    async def session_exists(self, device_id: str, session_id: str) -> bool:
        ...

    @abstractmethod
    async def get_session_totals(self, device_id: str, session_id: str) -> SessionTotals:
        """Sum of recorded per-chunk step deltas and the highest sample number seen."""

    @abstractmethod
    async def get_params(self, device_id: str, session_id: str) -> StepCounterParams | None:
        ...

    @abstractmethod
    async def save_params(
        self,
        device_id: str,
        session_id: str,
        params: StepCounterParams,
    ) -> None:
        ...

    @abstractmethod
    async def get_mapping(self, device_id: str) -> TimestampMapping | None:
        ...

    @abstractmethod
    async def save_mapping(self, device_id: str, mapping: TimestampMapping) -> None:
        ...

    @abstractmethod
    async def record_chunk(self, record: ChunkRecord) -> int:
        """Persist a processed chunk and return its id."""

    @abstractmethod
    async def list_temperature_chunks(
        self,
        device_id: str,
        session_id: str | None = None,
    ) -> list[TemperatureChunk]:
        """Temperature payloads in arrival order, optionally for one session."""
