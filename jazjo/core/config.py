from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # --- Service ---
    PROJECT_NAME: str = "Jazjo"
    APP_BASE_URL: str = ""
    PORT: int = 3000
    STATIC_DIR: str = "public"
    LOG_LEVEL: str = "INFO"

    # --- Supabase (REST data API + auth) ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""
    SUPABASE_SERVICE_ROLE_KEY: str = ""

    # --- Storage backend: "supabase" (REST) or "sql" (SQLAlchemy) ---
    STORE_BACKEND: str = "supabase"
    DATABASE_URL: str = "sqlite:///./jazjo.db"

    # --- PayMongo ---
    PAYMONGO_SECRET_KEY: str = ""
    PAYMONGO_WEBHOOK_SECRET: str = ""
    PAYMONGO_API_BASE: str = "https://api.paymongo.com/v1"
    HTTP_TIMEOUT_SECONDS: float = 15.0

    # --- Business policy ---
    TIMEZONE: str = "Asia/Manila"
    CURRENCY: str = "PHP"
    FREE_DELIVERY_THRESHOLD: Decimal = Decimal("800")
    FLAT_DELIVERY_FEE: Decimal = Decimal("60")
    REWARD_BLOCK_AMOUNT: Decimal = Decimal("100")
    REWARD_POINTS_PER_BLOCK: int = 10
    LOW_STOCK_LIMIT: int = 10
    MAX_BODY_BYTES: int = 1_000_000

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

    @property
    def base_url(self) -> str:
        return (self.APP_BASE_URL or f"http://localhost:{self.PORT}").rstrip("/")


def is_configured(value: str) -> bool:
    """Empty values and dashboard placeholders like 'sk_test_...' count as unset."""
    return bool(value) and "..." not in value


settings = Settings()
