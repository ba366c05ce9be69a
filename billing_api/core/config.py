import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Pricing
    VAT_PERCENT: float = 25  # percent, converted to a fraction by the pricing engine
    USER_PAYS_VAT: bool = True

    # Auth gate
    DISABLE_JWT: bool = False
    JWT_SECRET: Optional[str] = None

    # Outbound webhook fired after a subscription renewal
    WEBHOOK_RENEW_SUBSCRIPTION: Optional[str] = None
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0

    # Payment provider: "manual" | "stripe"
    PAYMENT_PROVIDER: str = "manual"
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    # HMAC key for renewals sent to the manual provider; unset refuses them
    MANUAL_WEBHOOK_SECRET: Optional[str] = None

    # Cache provider: "none" | "fastly"
    CACHE_PROVIDER: str = "none"
    FASTLY_API_KEY: Optional[str] = None
    FASTLY_SERVICE_ID: Optional[str] = None

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def required_keys_for(cfg: Settings) -> list[str]:
    """Configuration keys needed by the selected auth mode and providers."""
    keys = []
    if not getattr(cfg, "DISABLE_JWT", False):
        keys.append("JWT_SECRET")
    if getattr(cfg, "PAYMENT_PROVIDER", "manual") == "stripe":
        keys.extend(["STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET"])
    if getattr(cfg, "CACHE_PROVIDER", "none") == "fastly":
        keys.extend(["FASTLY_API_KEY", "FASTLY_SERVICE_ID"])
    return keys


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("billing_api")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = ["DATABASE_URL"] + required_keys_for(cfg)

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
