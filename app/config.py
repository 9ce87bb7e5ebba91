from pydantic_settings import BaseSettings
from pydantic import field_validator
from decimal import Decimal
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./storefront.db"

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # JWT verification (tokens are issued by the identity service)
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"

    # App Settings
    APP_NAME: str = "Storefront Order Core"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Delivery fees (FCFA)
    INTRA_URBAN_DELIVERY_FEE: Decimal = Decimal("1000")  # Vendor and customer in the same city
    INTER_URBAN_DELIVERY_FEE: Decimal = Decimal("2500")  # Different cities, or unknown vendor
    PREMIUM_DELIVERY_DISCOUNT_PERCENTAGE: Decimal = Decimal("0")  # Off the computed fee for premium customers

    # Order lifecycle
    ORDER_STRICT_TRANSITIONS: bool = True  # Reject transitions outside the predecessor table
    TRACKING_NUMBER_PREFIX: str = "KZ"

    # Tracking history defaults
    SYSTEM_LOCATION: str = "System"

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return self.CORS_ORIGINS

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
