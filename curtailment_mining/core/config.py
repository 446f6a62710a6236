"""Pydantic-settings configuration for the curtailment mining engine.

Loads database connection parameters and reconciliation tunables from the
.env file with sensible defaults for local development. Computed fields
produce fully-formed connection URLs.
"""

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from curtailment_mining.core.exceptions import ConfigurationError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Project
    project_name: str = "Curtailment Mining"
    debug: bool = False

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "curtailment_mining"
    postgres_user: str = "curtailment_user"
    postgres_password: str = ""

    # Full URL override (e.g. sqlite:///local.db); wins over postgres_* when set
    database_url: str = ""

    # SQLAlchemy pool settings
    db_pool_size: int = 10
    db_max_overflow: int = 10
    db_pool_pre_ping: bool = True
    db_sslmode: str = "prefer"  # Set to "require" in production

    # Settlement calendar
    intervals_per_day: int = 48
    interval_seconds: int = 1800

    # Reconciliation
    active_hardware_models: str = "S19J_PRO,S9,M20S"  # Comma-separated
    reconcile_max_workers: int = 4
    aggregate_epsilon: float = 1e-8
    yield_decimal_places: int = 8

    @computed_field
    @property
    def sync_database_url(self) -> str:
        """Sync connection string for psycopg2 (engine and Alembic)."""
        if self.database_url:
            return self.database_url
        base = (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )
        if self.db_sslmode and self.db_sslmode != "disable":
            return f"{base}?sslmode={self.db_sslmode}"
        return base

    @property
    def hardware_model_names(self) -> list[str]:
        """Active hardware model names, parsed from the comma-separated setting."""
        return [
            name.strip().upper()
            for name in self.active_hardware_models.split(",")
            if name.strip()
        ]


# Singleton instance
settings = Settings()


def positive_setting(name: str, value: int | None, default: int) -> int:
    """Return ``value``, or ``default`` when it is None; the result must be >= 1."""
    resolved = default if value is None else value
    if resolved < 1:
        raise ConfigurationError(f"{name} must be >= 1, got {resolved}")
    return resolved
