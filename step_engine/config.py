"""Configuration for the collar step engine service."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with STEP_ENGINE_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="STEP_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Service settings
    service_name: str = "collar-step-engine"
    host: str = "0.0.0.0"
    port: int = 8014
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = Field(default="json", description="Log format: json or text")

    # Database settings (in-memory store when unset)
    database_url: str | None = Field(
        default=None,
        description="PostgreSQL connection URL",
    )
    database_pool_min_size: int = 2
    database_pool_max_size: int = 10
    database_command_timeout: float = 30.0

    # Timestamp reconstruction
    nominal_period_ms: float = Field(
        default=10.0,
        description="Device clock period between sample numbers (100 Hz)",
    )
    temperature_interval_ms: int = Field(
        default=1000,
        description="Spacing between consecutive temperature readings",
    )

    # Session state cache
    session_idle_seconds: float = Field(
        default=1800.0,
        description="Evict in-memory session state after this much inactivity",
    )
    eviction_interval_seconds: float = Field(
        default=60.0,
        description="How often the idle-session sweep runs",
    )

    # Kafka output (optional)
    kafka_enabled: bool = False
    kafka_bootstrap_servers: str = "kafka:29092"
    kafka_client_id: str = "collar-step-engine"
    kafka_output_topic: str = "device.health.steps.raw"

    # Monitoring
    metrics_enabled: bool = True


settings = Settings()
