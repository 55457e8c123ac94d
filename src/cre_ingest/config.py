"""Application configuration using pydantic-settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CRE_INGEST_",
        extra="ignore",
    )

    # Job queue
    max_concurrent_jobs: int = Field(
        default=3,
        ge=1,
        description="Maximum number of jobs running at the same time",
    )
    default_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per job before it is marked failed",
    )
    retry_backoff_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Retry delay per attempt (delay = backoff * attempts)",
    )
    job_timeout_seconds: float = Field(
        default=0,
        ge=0,
        description="Per-job timeout; 0 disables the timeout",
    )
    executor_step_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Simulated work between executor progress milestones",
    )

    # Normalization
    duplicate_threshold: float = Field(
        default=0.85,
        ge=0,
        le=1,
        description="Minimum similarity for two records to be treated as duplicates",
    )

    # Ingestion
    ingestion_sources: str = Field(
        default="LoopNet,Crexi,RealtyRates",
        description="Comma-separated list of listing sources to pull from",
    )
    source_delay_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Pause between consecutive source fetches",
    )
    source_latency_seconds: float = Field(
        default=1.5,
        ge=0,
        description="Simulated network latency of the sample listing sources",
    )
    batch_size: int = Field(default=50, ge=1, description="Records inserted per batch")
    enable_validation: bool = Field(
        default=True,
        description="Drop records failing the ingestion checks before persistence",
    )

    # Database
    database_path: str = Field(default="data/properties.db")

    # Logging
    json_logs: bool = Field(default=False, description="Emit JSON logs instead of console output")

    @property
    def job_timeout(self) -> float | None:
        """Per-job timeout in seconds, or None when disabled."""
        return self.job_timeout_seconds or None

    def get_ingestion_sources(self) -> list[str]:
        """Parse ingestion_sources string into a list of source names."""
        return [s.strip() for s in self.ingestion_sources.split(",") if s.strip()]
