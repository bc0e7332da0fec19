"""Application configuration powered by Pydantic settings."""

from __future__ import annotations

from functools import lru_cache
from typing import Final
from urllib.parse import quote_plus

from pydantic import AnyUrl, Field, computed_field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized configuration object with environment fallbacks."""

    model_config = SettingsConfigDict(env_prefix="FERMENTWATCH_", env_file=".env", extra="allow")

    # App
    app_name: str = "FermentWatch"
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3001
    debug: bool = False
    log_level: str = Field(default="info")

    # Database
    db_host: str = Field(default="localhost")
    db_port: int = Field(default=5432)
    db_name: str = Field(default="fermentwatch")
    db_user: str = Field(default="fermentwatch")
    db_password: str = Field(default="fermentwatch")
    db_url: AnyUrl | str | None = Field(default=None)

    # Home Assistant
    home_assistant_url: AnyUrl | str = Field(default="http://localhost:8123")
    home_assistant_token: str | None = Field(default=None)
    hub_timeout_s: float = Field(default=5.0, gt=0)

    # Direct (Shelly) outlets
    device_timeout_s: float = Field(default=5.0, gt=0)

    # Control loop
    poll_interval_ms: int = Field(default=30_000, gt=0)
    health_check_interval_s: int = Field(default=3600, gt=0)

    # InfluxDB
    influx_url: str = Field(default="http://localhost:8086")
    influx_token: str = Field(default="")
    influx_org: str = Field(default="fermentation")
    influx_bucket: str = Field(default="sensors")
    influx_timeout_ms: int = Field(default=5000, gt=0)

    @field_validator("home_assistant_token", mode="before")
    @classmethod
    def _coerce_empty_token(cls, v: str | None) -> str | None:
        """Treat a blank token as unset so no Authorization header is sent."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def _timeouts_fit_interval(self) -> Settings:
        # A single hung call must leave room for the rest of the cycle.
        budget = self.poll_interval_s / 3
        for name in ("hub_timeout_s", "device_timeout_s"):
            if getattr(self, name) > budget:
                raise ValueError(
                    f"{name}={getattr(self, name)} exceeds a third of the poll interval "
                    f"({budget:.1f}s)"
                )
        if self.influx_timeout_ms / 1000 > budget:
            raise ValueError(
                f"influx_timeout_ms={self.influx_timeout_ms} exceeds a third of the poll interval"
            )
        return self

    @property
    def poll_interval_s(self) -> float:
        return self.poll_interval_ms / 1000

    @computed_field  # type: ignore[prop-decorator]
    @property
    def database_url(self) -> str:
        """Return a fully qualified async SQLAlchemy database URL."""

        if self.db_url:
            return str(self.db_url)
        return (
            f"postgresql+psycopg://{quote_plus(self.db_user)}:{quote_plus(self.db_password)}@"
            f"{self.db_host}:{self.db_port}/{self.db_name}"
        )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


SETTINGS: Final[Settings] = get_settings()
