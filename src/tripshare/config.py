from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    bot_token: str = Field(..., alias="BOT_TOKEN")
    database_url: str = Field(..., alias="DATABASE_URL")
    currency: str = Field("THB", alias="CURRENCY")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    # Switches /promptpay to the checksum-validating decoder.
    promptpay_strict_crc: bool = Field(False, alias="PROMPTPAY_STRICT_CRC")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]
