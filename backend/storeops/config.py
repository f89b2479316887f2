from pydantic_settings import BaseSettings
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    # "postgres" talks to DATABASE_URL; "demo" runs against an in-memory
    # SQLite store seeded with generated orders, products and expenses.
    DATA_PROVIDER: str = "postgres"
    DATABASE_URL: Optional[str] = None
    DEMO_SEED: int = 42

    # Shared secret for webhook/automation endpoints. When it is missing the
    # endpoints refuse every call unless ALLOW_INSECURE_WEBHOOKS is set.
    WEBHOOK_API_KEY: Optional[str] = None
    ALLOW_INSECURE_WEBHOOKS: bool = False

    WOOCOMMERCE_STORE_URL: Optional[str] = None
    WOOCOMMERCE_CONSUMER_KEY: Optional[str] = None
    WOOCOMMERCE_CONSUMER_SECRET: Optional[str] = None

    SHIPPO_API_TOKEN: Optional[str] = None
    SHIPPO_API_BASE_URL: str = "https://api.goshippo.com"

    HTTP_MAX_RETRIES: int = 3
    HTTP_RETRY_BASE_DELAY: float = 1.0

    BUSINESS_TIMEZONE: str = "America/New_York"
    LOW_STOCK_THRESHOLD: int = 20
    AFFILIATE_COMMISSION_RATE: float = 0.10

    # Categorization rules are operator-editable, so regex patterns get a
    # hard per-evaluation time bound and a length cap.
    RULE_REGEX_TIMEOUT_SECONDS: float = 0.05
    RULE_PATTERN_MAX_LENGTH: int = 500

    ALLOWED_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = None
        extra = "ignore"


settings = Settings()
