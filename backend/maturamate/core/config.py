from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "MaturaMate"
    version: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    APP_DOMAIN: str = "maturamate.it"
    APP_BASE_URL: str = "http://localhost:3000"
    APP_DATABASE_DSN: str = "sqlite:////tmp/maturamate.db"

    # Bearer tokens issued by the auth provider
    AUTH_JWT_SECRET: str = "change-me-to-a-long-random-secret-value"
    AUTH_JWT_ALGORITHM: str = "HS256"

    # Stripe
    stripe_api_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_price_id_one_subject: str = ""
    stripe_price_id_additional_subject: str = ""

    # Custom plan pricing (EUR)
    FIRST_SUBJECT_PRICE: Decimal = Decimal("4.99")
    ADDITIONAL_SUBJECT_PRICE: Decimal = Decimal("2.49")
    CURRENCY: str = "eur"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"


settings = Settings()
