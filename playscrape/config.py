from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class ScraperSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    ENV: str = "development"

    STORE_DETAILS_URL: str = "https://play.google.com/store/apps/details"
    STORE_LANGUAGE: str = "en_US"
    STORE_COUNTRY: str = "US"

    FETCH_USER_AGENT: str = (
        "Mozilla/5.0 (Linux; Android 11; Pixel 5) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/115.0.0.0 Mobile Safari/537.36"
    )
    FETCH_ACCEPT_LANGUAGE: str = "en-US,en;q=0.9"
    FETCH_REFERER: str = "https://www.google.com/"
    FETCH_TIMEOUT_SECONDS: float = 3.0
    FETCH_MAX_ATTEMPTS: int = 3
    FETCH_RETRY_INTERVAL_SECONDS: float = 1.0

    CACHE_TTL_SECONDS: int = 6 * 60 * 60
    MAX_SCREENSHOTS: int = 5

    RATELIMIT_DEFAULT: str = "5 per second"
    RATELIMIT_STORAGE_URI: str = "memory://"


settings = ScraperSettings()
