import os
from functools import lru_cache

from pydantic import BaseModel, Field

from tradingbook.integrations.stockbit_rest import DEFAULT_CHART_URL, DEFAULT_ORDERBOOK_BASE_URL


class Settings(BaseModel):
    STOCKBIT_ORDERBOOK_BASE_URL: str = DEFAULT_ORDERBOOK_BASE_URL
    STOCKBIT_CHART_URL: str = DEFAULT_CHART_URL
    POLL_INTERVAL_SEC: float = Field(default=60.0, gt=0)
    REQUEST_TIMEOUT_SEC: float = Field(default=10.0, gt=0)
    CHART_INTERVAL_MIN: int = Field(default=1, ge=1)
    ORDER_BOOK_DEPTH: int = Field(default=10, ge=1)
    CREDENTIAL_FILE: str | None = None
    AUTH_TOKEN: str = ""

    @classmethod
    def from_env(cls) -> "Settings":
        raw = {
            "STOCKBIT_ORDERBOOK_BASE_URL": os.getenv("STOCKBIT_ORDERBOOK_BASE_URL"),
            "STOCKBIT_CHART_URL": os.getenv("STOCKBIT_CHART_URL"),
            "POLL_INTERVAL_SEC": os.getenv("TRADINGBOOK_POLL_INTERVAL_SEC"),
            "REQUEST_TIMEOUT_SEC": os.getenv("TRADINGBOOK_REQUEST_TIMEOUT_SEC"),
            "CHART_INTERVAL_MIN": os.getenv("TRADINGBOOK_CHART_INTERVAL_MIN"),
            "ORDER_BOOK_DEPTH": os.getenv("TRADINGBOOK_ORDER_BOOK_DEPTH"),
            "CREDENTIAL_FILE": os.getenv("TRADINGBOOK_CREDENTIAL_FILE") or None,
            "AUTH_TOKEN": os.getenv("TRADINGBOOK_AUTH_TOKEN"),
        }
        # unset variables fall back to the field defaults
        return cls.model_validate({k: v for k, v in raw.items() if v is not None})


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
