"""Environment-driven configuration with Pydantic v2."""

from typing import List, Literal, Optional
from pathlib import Path
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    environment: Literal["development", "test", "production"] = Field(default="development", env="ENVIRONMENT")
    host: str = Field(default="0.0.0.0", env="HOST")
    port: int = Field(default=3010, env="PORT", ge=1024, le=65535)
    cors_origins: List[str] = Field(default=["*"], env="CORS_ORIGINS")

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./data/transcripts.db", env="DATABASE_URL")
    database_echo: bool = Field(default=False, env="DATABASE_ECHO")
    database_pool_size: int = Field(default=20, env="DATABASE_POOL_SIZE", ge=5, le=100)
    database_max_overflow: int = Field(default=30, env="DATABASE_MAX_OVERFLOW", ge=10, le=100)

    # Cache backend
    redis_url: str = Field(default="redis://localhost:6379/0", env="REDIS_URL")
    redis_enabled: bool = Field(default=True, env="REDIS_ENABLED")
    redis_connect_timeout: float = Field(default=3.0, env="REDIS_CONNECT_TIMEOUT", gt=0)
    redis_retry_interval: float = Field(default=60.0, env="REDIS_RETRY_INTERVAL", ge=0)
    cache_startup_timeout: float = Field(default=5.0, env="CACHE_STARTUP_TIMEOUT", gt=0)

    # Cache TTLs (seconds)
    transcript_cache_ttl: int = Field(default=60 * 60 * 24, env="TRANSCRIPT_CACHE_TTL", gt=0)
    video_metadata_cache_ttl: int = Field(default=60 * 60 * 12, env="VIDEO_METADATA_CACHE_TTL", gt=0)
    search_results_cache_ttl: int = Field(default=60 * 30, env="SEARCH_RESULTS_CACHE_TTL", gt=0)

    # Cache monitoring
    cache_monitoring_enabled: bool = Field(default=False, env="CACHE_MONITORING_ENABLED")
    cache_monitoring_interval: Optional[float] = Field(default=None, env="CACHE_MONITORING_INTERVAL", gt=0)
    cache_min_hit_rate: float = Field(default=70.0, env="CACHE_MIN_HIT_RATE", ge=0, le=100)
    cache_max_latency_ms: float = Field(default=100.0, env="CACHE_MAX_LATENCY_MS", gt=0)
    cache_max_error_rate: float = Field(default=5.0, env="CACHE_MAX_ERROR_RATE", ge=0, le=100)
    cache_key_count_warning: int = Field(default=10000, env="CACHE_KEY_COUNT_WARNING", ge=1)

    # Search indexing
    index_batch_size: int = Field(default=10, env="INDEX_BATCH_SIZE", ge=1)
    index_batch_delay: float = Field(default=0.1, env="INDEX_BATCH_DELAY", ge=0)

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_format: str = Field(default="json", env="LOG_FORMAT")
    log_file: Optional[str] = Field(default=None, env="LOG_FILE")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite"):
            if ":///" in v:
                db_path = v.split("///")[1]
                if db_path and db_path != ":memory:":
                    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @model_validator(mode="after")
    def validate_ttl_ordering(self):
        """Search results must not outlive the entities they were computed from."""
        longest_allowed = min(self.transcript_cache_ttl, self.video_metadata_cache_ttl)
        if self.search_results_cache_ttl > longest_allowed:
            raise ValueError(
                "search_results_cache_ttl must be <= transcript and video metadata TTLs"
            )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def monitoring_interval_seconds(self) -> float:
        """Interval between cache health checks (5 min in production, 2 min elsewhere)."""
        if self.cache_monitoring_interval:
            return self.cache_monitoring_interval
        return 300.0 if self.is_production else 120.0

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
