from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Service settings, read from the environment or a local .env file."""

    DATABASE_URL: str = "sqlite:///./pricing.db"

    # JWT issued by the identity service; only decoded here
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # evaluation
    DEFAULT_CURRENCY: str = "USD"
    BUSINESS_TIMEZONE: str = "UTC"
    SLOW_EVALUATION_MS: float = 30.0

    LOG_LEVEL: str = "INFO"

    @field_validator("DEFAULT_CURRENCY")
    @classmethod
    def currency_code(cls, value: str) -> str:
        if len(value) != 3 or not value.isalpha():
            raise ValueError(f"DEFAULT_CURRENCY must be a 3-letter code, got {value!r}")
        return value.upper()

    @field_validator("BUSINESS_TIMEZONE")
    @classmethod
    def known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown BUSINESS_TIMEZONE {value!r}")
        return value

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
