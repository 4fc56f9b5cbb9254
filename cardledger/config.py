from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "CardLedger"
    debug: bool = False

    database_url: str = "sqlite+aiosqlite:///./cardledger.db"

    # Single-user deployments run everything as this user
    default_user_id: str = "guest"

    log_level: str = "INFO"

    duplicate_threshold: int = 4
    price_stale_hours: int = 24
    default_currency: str = "EUR"


settings = Settings()


# =============================================================================
# LEDGER DEFAULTS
# =============================================================================

DEFAULT_VARIANT = "normal"

COLLECTION_TYPES = ("manual", "auto")
