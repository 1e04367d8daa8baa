"""PostgreSQL store backed by an asyncpg connection pool."""

import json

import asyncpg
import structlog

from ..config import Settings, settings as default_settings
from ..models import ChunkRecord, SessionTotals, TemperatureChunk
from ..params import StepCounterParams, params_from_record
from ..timestamps import TimestampMapping
from .base import StepStore, next_session_id

logger = structlog.get_logger(__name__)


class PostgresStepStore(StepStore):
    """Persists sessions, parameters, mappings and chunk records."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or default_settings
        self.pool: asyncpg.Pool | None = None
        self.is_connected = False

    async def start(self) -> None:
        """Start database connection pool and ensure tables exist."""
        if not self.settings.database_url:
            raise RuntimeError("No database URL configured")

        logger.info("Starting database connection pool")

        try:
            self.pool = await asyncpg.create_pool(
                self.settings.database_url,
                min_size=self.settings.database_pool_min_size,
                max_size=self.settings.database_pool_max_size,
                command_timeout=self.settings.database_command_timeout,
                server_settings={
                    "application_name": self.settings.service_name,
                },
            )
            await self._ensure_tables_exist()
            self.is_connected = True
            logger.info("Database connection pool started successfully")

        except Exception as e:
            logger.error("Failed to start database connection pool", error=str(e))
            raise

    async def stop(self) -> None:
        """Stop database connection pool."""
        if self.pool:
            try:
                await self.pool.close()
                logger.info("Database connection pool stopped")
            except Exception as e:
                logger.error("Error stopping database connection pool", error=str(e))
        self.is_connected = False

    async def ping(self) -> bool:
        if not self.pool:
            return False
        async with self.pool.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1

    def _require_pool(self) -> asyncpg.Pool:
        if not self.pool:
            raise RuntimeError("Database not connected")
        return self.pool

    async def _ensure_tables_exist(self) -> None:
        async with self._require_pool().acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS device_sessions (
                    device_id TEXT NOT NULL,
                    session_id TEXT NOT NULL,
                    active BOOLEAN NOT NULL DEFAULT FALSE,
                    created_by TEXT,
                    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (device_id, session_id)
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS step_counter_params (
                    device_id TEXT NOT NULL,
                    session_id TEXT NOT NULL,
                    params JSONB NOT NULL,
                    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (device_id, session_id)
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS device_timestamp_mappings (
                    device_id TEXT PRIMARY KEY,
                    mapping JSONB NOT NULL,
                    updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS device_chunks (
                    id BIGSERIAL PRIMARY KEY,
                    device_id TEXT NOT NULL,
                    session_id TEXT NOT NULL,
                    chunk_key TEXT NOT NULL,
                    start_sample BIGINT,
                    num_samples INTEGER NOT NULL,
                    nominal_period_ms DOUBLE PRECISION NOT NULL,
                    real_time TEXT,
                    temp_first_timestamp TEXT,
                    temp_data JSONB NOT NULL DEFAULT '[]'::jsonb,
                    raw_imu_base64 TEXT,
                    output_metric JSONB NOT NULL,
                    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_device_chunks_session
                ON device_chunks (device_id, session_id);
            """)

    async def get_active_session(self, device_id: str) -> str | None:
        async with self._require_pool().acquire() as conn:
            return await conn.fetchval(
                "SELECT session_id FROM device_sessions WHERE device_id = $1 AND active = TRUE LIMIT 1",
                device_id,
            )

    async def create_session(self, device_id: str, created_by: str = "api") -> str:
        async with self._require_pool().acquire() as conn:
            async with conn.transaction():
                rows = await conn.fetch(
                    "SELECT session_id FROM device_sessions WHERE device_id = $1 FOR UPDATE",
                    device_id,
                )
                session_id = next_session_id({row["session_id"] for row in rows})
                await conn.execute(
                    "UPDATE device_sessions SET active = FALSE WHERE device_id = $1",
                    device_id,
                )
                await conn.execute(
                    """
                    INSERT INTO device_sessions (device_id, session_id, active, created_by)
                    VALUES ($1, $2, TRUE, $3)
                    """,
                    device_id,
                    session_id,
                    created_by,
                )

        logger.info("Session created", device_id=device_id, session_id=session_id)
        return session_id

    async def session_exists(self, device_id: str, session_id: str) -> bool:
        async with self._require_pool().acquire() as conn:
            found = await conn.fetchval(
                "SELECT 1 FROM device_sessions WHERE device_id = $1 AND session_id = $2 LIMIT 1",
                device_id,
                session_id,
            )
        return found is not None

    async def get_session_totals(self, device_id: str, session_id: str) -> SessionTotals:
        async with self._require_pool().acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT
                    COALESCE(SUM((output_metric->>'steps_in_chunk')::bigint), 0) AS total,
                    COALESCE(MAX((output_metric->>'last_sample_number')::bigint), -1) AS last_sample,
                    COUNT(*) AS chunk_count
                FROM device_chunks
                WHERE device_id = $1 AND session_id = $2
                """,
                device_id,
                session_id,
            )
        return SessionTotals(
            cumulative_steps=int(row["total"]),
            last_sample_number=int(row["last_sample"]),
            chunk_count=int(row["chunk_count"]),
        )

    async def get_params(self, device_id: str, session_id: str) -> StepCounterParams | None:
        async with self._require_pool().acquire() as conn:
            raw = await conn.fetchval(
                "SELECT params FROM step_counter_params WHERE device_id = $1 AND session_id = $2",
                device_id,
                session_id,
            )
        if raw is None:
            return None
        return params_from_record(json.loads(raw))

    async def save_params(
        self,
        device_id: str,
        session_id: str,
        params: StepCounterParams,
    ) -> None:
        async with self._require_pool().acquire() as conn:
            await conn.execute(
                """
                INSERT INTO step_counter_params (device_id, session_id, params)
                VALUES ($1, $2, $3::jsonb)
                ON CONFLICT (device_id, session_id)
                DO UPDATE SET params = EXCLUDED.params, updated_at = CURRENT_TIMESTAMP
                """,
                device_id,
                session_id,
                params.model_dump_json(),
            )

    async def get_mapping(self, device_id: str) -> TimestampMapping | None:
        async with self._require_pool().acquire() as conn:
            raw = await conn.fetchval(
                "SELECT mapping FROM device_timestamp_mappings WHERE device_id = $1",
                device_id,
            )
        if raw is None:
            return None
        return TimestampMapping.model_validate_json(raw)

    async def save_mapping(self, device_id: str, mapping: TimestampMapping) -> None:
        async with self._require_pool().acquire() as conn:
            await conn.execute(
                """
                INSERT INTO device_timestamp_mappings (device_id, mapping)
                VALUES ($1, $2::jsonb)
                ON CONFLICT (device_id)
                DO UPDATE SET mapping = EXCLUDED.mapping, updated_at = CURRENT_TIMESTAMP
                """,
                device_id,
                mapping.model_dump_json(),
            )

    async def record_chunk(self, record: ChunkRecord) -> int:
        async with self._require_pool().acquire() as conn:
            chunk_id = await conn.fetchval(
                """
                INSERT INTO device_chunks (
                    device_id, session_id, chunk_key, start_sample, num_samples,
                    nominal_period_ms, real_time, temp_first_timestamp, temp_data,
                    raw_imu_base64, output_metric
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb, $10, $11::jsonb)
                RETURNING id
                """,
                record.device_id,
                record.session_id,
                record.chunk_key,
                record.start_sample,
                record.num_samples,
                record.nominal_period_ms,
                record.real_time,
                record.temp_first_timestamp,
                json.dumps(record.temp_data),
                record.raw_imu_base64,
                record.output_metric.model_dump_json(),
            )
        return int(chunk_id)

    async def list_temperature_chunks(
        self,
        device_id: str,
        session_id: str | None = None,
    ) -> list[TemperatureChunk]:
        query = """
            SELECT temp_data, temp_first_timestamp
            FROM device_chunks
            WHERE device_id = $1
        """
        args: list[str] = [device_id]
        if session_id is not None:
            query += " AND session_id = $2"
            args.append(session_id)
        query += " ORDER BY created_at ASC, id ASC"

        async with self._require_pool().acquire() as conn:
            rows = await conn.fetch(query, *args)

        return [
            TemperatureChunk(
                temp_data=json.loads(row["temp_data"]) if row["temp_data"] else [],
                temp_first_timestamp=row["temp_first_timestamp"],
            )
            for row in rows
        ]
