from functools import lru_cache
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service configuration, read from the environment and an optional .env file."""

    # Accept .env and ignore any keys that belong to other tools.
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = Field(default="sqlite:///./restaurant_pos.db")
    log_level: str = Field(default="INFO")
    allowed_origins: str = Field(default="*")
    seed_defaults: bool = Field(default=True)
    # IANA zone that decides the bill date and sales periods; unset means the server's zone.
    restaurant_timezone: Optional[str] = Field(default=None)

    # Server request lock table
    lock_timeout_seconds: float = Field(default=30.0, gt=0)
    lock_sweep_interval_seconds: float = Field(default=5.0, gt=0)
    max_request_locks: int = Field(default=1000, ge=1)

    # Duplicate detection and bill numbering
    duplicate_window_seconds: float = Field(default=300.0, gt=0)
    bill_number_max_attempts: int = Field(default=5, ge=1)
    temp_bill_prefix: str = Field(default="TEMP-", min_length=1)

    @field_validator("restaurant_timezone")
    @classmethod
    def _known_zone(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        try:
            ZoneInfo(v.strip())
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown time zone: {v}")
        return v.strip()

    @property
    def tzinfo(self) -> Optional[ZoneInfo]:
        return ZoneInfo(self.restaurant_timezone) if self.restaurant_timezone else None

    @property
    def origins(self) -> List[str]:
        s = (self.allowed_origins or "").strip()
        if s == "*":
            return ["*"]
        parts = [p.strip() for p in s.split(",") if p.strip()]
        return parts or ["*"]


@lru_cache
def get_settings() -> Settings:
    return Settings()
