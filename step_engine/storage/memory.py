"""In-process store used for development and tests."""

from collections import defaultdict

from ..models import ChunkRecord, SessionTotals, TemperatureChunk
from ..params import StepCounterParams
from ..timestamps import TimestampMapping
from .base import StepStore, next_session_id


class InMemoryStepStore(StepStore):
    """Keeps every record in dictionaries; nothing survives the process."""

    def __init__(self) -> None:
        self.sessions: dict[str, dict[str, bool]] = defaultdict(dict)
        self.params: dict[tuple[str, str], StepCounterParams] = {}
        self.mappings: dict[str, TimestampMapping] = {}
        self.chunks: list[tuple[int, ChunkRecord]] = []
        self._next_chunk_id = 1

    async def get_active_session(self, device_id: str) -> str | None:
        for session_id, active in self.sessions.get(device_id, {}).items():
            if active:
                return session_id
        return None

    async def create_session(self, device_id: str, created_by: str = "api") -> str:
        sessions = self.sessions[device_id]
        session_id = next_session_id(sessions.keys())
        for existing in sessions:
            sessions[existing] = False
        sessions[session_id] = True
        return session_id

    async def session_exists(self, device_id: str, session_id: str) -> bool:
        return session_id in self.sessions.get(device_id, {})

    async def get_session_totals(self, device_id: str, session_id: str) -> SessionTotals:
        totals = SessionTotals()
        for _, record in self.chunks:
            if record.device_id != device_id or record.session_id != session_id:
                continue
            metric = record.output_metric
            totals.cumulative_steps += metric.steps_in_chunk
            totals.last_sample_number = max(totals.last_sample_number, metric.last_sample_number)
            totals.chunk_count += 1
        return totals

    async def get_params(self, device_id: str, session_id: str) -> StepCounterParams | None:
        return self.params.get((device_id, session_id))

    async def save_params(
        self,
        device_id: str,
        session_id: str,
        params: StepCounterParams,
    ) -> None:
        self.params[(device_id, session_id)] = params

    async def get_mapping(self, device_id: str) -> TimestampMapping | None:
        return self.mappings.get(device_id)

    async def save_mapping(self, device_id: str, mapping: TimestampMapping) -> None:
        self.mappings[device_id] = mapping

    async def record_chunk(self, record: ChunkRecord) -> int:
        chunk_id = self._next_chunk_id
        self._next_chunk_id += 1
        self.chunks.append((chunk_id, record))
        return chunk_id

    async def list_temperature_chunks(
        self,
        device_id: str,
        session_id: str | None = None,
    ) -> list[TemperatureChunk]:
        return [
            TemperatureChunk(
                temp_data=record.temp_data,
                temp_first_timestamp=record.temp_first_timestamp,
            )
            for _, record in self.chunks
            if record.device_id == device_id
            and (session_id is None or record.session_id == session_id)
        ]
