from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./rebox.db"
    database_echo: bool = False

    # Operator API security
    admin_api_key: str = ""

    # Rewards
    reward_redemption_unit: int = Field(100, gt=0)
    reward_points_per_dollar: int = Field(100, gt=0)
    reward_types: list[str] = Field(default_factory=lambda: ["CASH", "GIFTCARD", "DONATION"])
    reward_levels_path: str | None = None
    leaderboard_default_limit: int = Field(10, ge=1, le=100)

    @field_validator("reward_types", mode="before")
    @classmethod
    def _parse_reward_types(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip().upper() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip().upper() for item in value if str(item).strip()]
        return []

    # Realtime relay
    realtime_queue_size: int = Field(100, gt=0)


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
