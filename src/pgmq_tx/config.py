"""Application settings loaded from the environment.

Uses pydantic-settings for validation; the DSN comes from ``PGMQ_DSN``.
"""

from pydantic import Field, PostgresDsn
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Runtime settings for the PGMQ client (Postgres DSN, pool sizing, logging)."""

    app_name: str = Field(default="PGMQ Transactional Client")
    pgmq_dsn: PostgresDsn | None = Field(default=None, description="Postgres DSN of the pgmq database")
    pgmq_pool_min_size: int = Field(default=1, ge=0)
    pgmq_pool_max_size: int = Field(default=4, ge=1)
    pgmq_verbose: bool = Field(default=False, description="Log every pgmq call at DEBUG")
    pgmq_log_filename: str | None = Field(default=None)


def get_settings() -> Settings:
    """Return the loaded settings instance."""
    return Settings()
