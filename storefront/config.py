from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional, List, Tuple
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

    # App Settings
    APP_NAME: str = "Storefront Checkout"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Currency (IDR has no minor unit in practice)
    CURRENCY: str = "IDR"
    CURRENCY_DECIMAL_PLACES: int = 0

    # Tax
    TAX_RATE_PERCENT: Decimal = Decimal("11")  # PPN / VAT

    # Tier pricing: list of (min_quantity, discount_percent), highest match wins
    RESELLER_TIERS: List[Tuple[int, Decimal]] = [
        (1, Decimal("5")),
        (5, Decimal("10")),
        (10, Decimal("15")),
        (20, Decimal("20")),
        (50, Decimal("25")),
        (100, Decimal("30")),
    ]
    RETAIL_TIERS: List[Tuple[int, Decimal]] = [
        (1, Decimal("0")),
        (5, Decimal("5")),
        (10, Decimal("10")),
    ]

    # Shipping
    DEFAULT_ORIGIN: str = ""  # Warehouse subdistrict / region code
    DEFAULT_COURIER: str = "jne"
    FREE_SHIPPING_THRESHOLD: Optional[Decimal] = None  # None = no global free shipping
    SHIPPING_API_URL: str = ""  # Carrier rate endpoint (empty = zone rate table)
    SHIPPING_API_KEY: str = ""
    SHIPPING_TIMEOUT_SECONDS: float = 10.0

    # Payment Gateway
    PAYMENT_GATEWAY: str = "sandbox"  # sandbox, razorpay
    PAYMENT_TIMEOUT_SECONDS: float = 10.0
    PAYMENT_EXPIRY_HOURS: int = 24
    SANDBOX_SERVER_KEY: str = "sandbox-server-key"
    SANDBOX_REDIRECT_URL: str = "https://sandbox.payments.local/pay"
    RAZORPAY_KEY_ID: str = ""  # Razorpay Key ID
    RAZORPAY_KEY_SECRET: str = ""  # Razorpay Key Secret
    RAZORPAY_WEBHOOK_SECRET: Optional[str] = None  # For webhook verification
    RAZORPAY_CHECKOUT_URL: str = "https://api.razorpay.com/v1/checkout/embedded"

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @field_validator('RESELLER_TIERS', 'RETAIL_TIERS', mode='before')
    @classmethod
    def parse_tiers(cls, v):
        # Accepts JSON ("[[1, 5], [10, 15]]") or "1:5,10:15"
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except json.JSONDecodeError:
                v = [pair.split(':') for pair in v.split(',') if pair.strip()]
        return sorted(
            (int(min_qty), Decimal(str(percent))) for min_qty, percent in v
        )

    @field_validator('PAYMENT_GATEWAY', mode='before')
    @classmethod
    def normalize_gateway(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
