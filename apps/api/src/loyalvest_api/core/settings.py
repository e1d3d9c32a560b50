from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./loyalvest.db"
    secret_key: str = "change-me"
    tracing_enabled: bool = True

    # Administrative / governance API security
    engine_api_key: str = ""

    # Engine defaults (seed values for governed parameters)
    vesting_window_days: int = Field(30, gt=0)
    cancellation_grace_period_hours: int = Field(0, ge=0)
    default_reward_percentage: float = Field(5.0, ge=0, le=100)
    default_monthly_points_cap: int = Field(1000, ge=0)
    max_nft_multiplier: float = Field(10.0, ge=1)

    # Authorize + grant unit of work
    transaction_max_attempts: int = Field(3, ge=1)
    transaction_retry_backoff_seconds: float = Field(0.05, ge=0)

    # Maturity sweep worker
    maturity_sweep_enabled: bool = False
    maturity_sweep_interval_seconds: int = 60 * 60
    maturity_sweep_batch_limit: int | None = None
    maturity_sweep_trigger_label: str = "scheduler"

    @field_validator("maturity_sweep_batch_limit", mode="before")
    @classmethod
    def _parse_optional_limit(cls, value: object) -> int | None:
        if value in (None, "", 0, "0"):
            return None
        return int(value)  # type: ignore[arg-type]

    # Engine job scheduler
    engine_job_scheduler_enabled: bool = False
    engine_job_schedule_path: str = "config/schedules.toml"


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
