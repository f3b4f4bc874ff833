"""Configuration management for the relief finance service."""
from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_LOGGING_CONFIG = Path(__file__).resolve().parent / "../.." / "configs" / "logging.yaml"


class Settings(BaseSettings):
    app_name: str = Field(default="Relief Finance")
    version: str = Field(default="0.1.0")
    docs_url: str | None = Field(default="/docs")
    redoc_url: str | None = Field(default="/redoc")
    openapi_url: str = Field(default="/openapi.json")

    database_url: str = Field(default="postgresql+psycopg://relief:relief@db:5432/relief")

    enable_metrics: bool = Field(default=True)
    enable_tracing: bool = Field(default=True)
    otel_exporter_endpoint: str | None = Field(default=None)

    logging_config_path: Path = Field(default=_DEFAULT_LOGGING_CONFIG)

    # Ceiling of the DECIMAL(6,3) percentage column.
    max_percentage_charging: Decimal = Field(default=Decimal("999.999"), ge=0)
    amount_precision: int = Field(default=3, ge=0, le=6)

    allow_booking_reversal: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RELIEF_",
        case_sensitive=False,
    )

    @property
    def amount_quantum(self) -> Decimal:
        """Smallest representable unit for derived amounts (``0.001`` by default)."""
        return Decimal(1).scaleb(-self.amount_precision)


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]
