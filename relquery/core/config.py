"""
Configuration Management

Centralized configuration using Pydantic Settings.
Values are read from RELQUERY_* environment variables or a local .env file.
"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Engine name -> SQLGlot dialect used when no dialect is configured
ENGINE_DIALECTS = {
    "duckdb": "duckdb",
    "sqlite": "sqlite",
    "postgres": "postgres",
    "postgresql": "postgres",
    "mysql": "mysql",
}


class Settings(BaseSettings):
    """Library settings."""

    model_config = SettingsConfigDict(
        env_prefix="RELQUERY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Store
    default_engine: str = "duckdb"
    dialect: Optional[str] = None

    # Ordering: placement of NULLs when an order key does not request one
    default_null_ordering: Literal["first", "last"] = "last"

    # Execution
    query_timeout_seconds: Optional[float] = Field(default=None, ge=0)

    # Observability
    log_sql: bool = False

    def dialect_for(self, engine: Optional[str] = None) -> str:
        """Resolve the SQL dialect for an engine (configured dialect wins)."""
        if self.dialect:
            return self.dialect
        engine = (engine or self.default_engine).lower()
        return ENGINE_DIALECTS.get(engine, engine)


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return settings
