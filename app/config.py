from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration - required from .env
    DATABASE_URL: str

    # Logging Configuration - required from .env
    LOG_LEVEL: str

    # Text/image generation - required from .env
    OPENAI_API_KEY: str
    OPENAI_TEXT_MODEL: str = "gpt-4o"
    OPENAI_IMAGE_MODEL: str = "dall-e-3"
    OPENAI_TIMEOUT_SECONDS: float = 60.0
    IMAGE_GENERATION_ENABLED: bool = True

    # Payments: "simulate" completes purchases without a processor
    PAYMENT_MODE: Literal["simulate", "stripe"] = "simulate"
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_API_BASE: str = "https://api.stripe.com/v1"
    PREMIUM_PRICE_CENTS: int = 299
    PREMIUM_CURRENCY: str = "usd"

    # Email delivery (SendGrid)
    SENDGRID_API_KEY: Optional[str] = None
    SENDGRID_API_BASE: str = "https://api.sendgrid.com/v3"
    EMAIL_FROM_ADDRESS: str = "gennie@birthday-messages.app"

    # SMS delivery (Twilio)
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_FROM_NUMBER: Optional[str] = None
    TWILIO_API_BASE: str = "https://api.twilio.com/2010-04-01"

    COLLABORATOR_TIMEOUT_SECONDS: float = 15.0

    @property
    def stripe_configured(self) -> bool:
        return bool(self.STRIPE_SECRET_KEY and self.STRIPE_WEBHOOK_SECRET)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
