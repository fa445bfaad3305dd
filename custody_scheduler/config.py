"""
Settings for the Custody Scheduler.

Values come from environment variables or a .env file in the working
directory (DATABASE_URL, LOG_LEVEL, RETIRE_STALE_CONFLICTS, ...).
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


class Settings(BaseSettings):
    """
    Application settings.

    Database and API options mirror the deployment (SQLite for local work,
    PostgreSQL in production); the conflict engine options change detection
    behavior.
    """

    python_env: Literal["development", "production"] = Field(
        default="development",
        description="Application environment"
    )
    log_level: LogLevel = Field(
        default="INFO",
        description="Logging level; DEBUG also echoes SQL"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./data/custody_scheduler.db",
        description="SQLAlchemy database URL"
    )
    db_pool_size: int = Field(
        default=5,
        ge=1,
        description="Connection pool size (PostgreSQL)"
    )
    db_pool_recycle_seconds: int = Field(
        default=3600,
        description="Recycle pooled connections after this many seconds (PostgreSQL)"
    )
    sqlite_busy_timeout_ms: int = Field(
        default=5000,
        ge=0,
        description="How long a SQLite writer waits for the database lock"
    )
    auto_create_tables: bool = Field(
        default=False,
        description="Create tables at API startup instead of running Alembic"
    )

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_reload: bool = Field(
        default=True,
        description="Auto-reload on code changes (development only)"
    )

    # Conflict engine
    retire_stale_conflicts: bool = Field(
        default=True,
        description="Retire open conflicts that no longer hold when an activity is re-checked"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v):
        return v.upper() if isinstance(v, str) else v

    @property
    def is_development(self) -> bool:
        return self.python_env == "development"

    @property
    def is_production(self) -> bool:
        return self.python_env == "production"

    @property
    def database_backend(self) -> str:
        """Dialect name from the URL ('sqlite', 'postgresql', ...)."""
        return self.database_url.split(":", 1)[0].split("+", 1)[0].lower()

    @property
    def uses_postgresql(self) -> bool:
        return self.database_backend in ("postgresql", "postgres")

    @property
    def uses_sqlite(self) -> bool:
        return self.database_backend == "sqlite"

    def validate_production_config(self) -> None:
        """
        Reject settings that are unsafe outside development.

        Raises:
            ValueError: Listing every problem found
        """
        if not self.is_production:
            return

        errors = []

        # Dimension locks use pg_advisory_xact_lock
        if not self.uses_postgresql:
            errors.append(
                "Production requires PostgreSQL. "
                "Set DATABASE_URL to a PostgreSQL connection string."
            )
        if self.auto_create_tables:
            errors.append("AUTO_CREATE_TABLES must be disabled in production; run Alembic migrations.")
        if self.api_reload:
            errors.append("API_RELOAD must be disabled in production.")

        if errors:
            raise ValueError("Production configuration errors:\n- " + "\n- ".join(errors))


@lru_cache()
def get_settings() -> Settings:
    """
    Settings loaded once per process.

    Tests that need different values build Settings(...) directly and pass it
    to SchedulingEngine instead of changing the cached instance.
    """
    return Settings()
