"""Centralised application settings loaded from environment / .env file."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Fares
    fare_rounding_step: int = 50  # NGN, customer-friendly round quotes
    currency: str = "NGN"

    # Dispatch
    default_eta_min: int = 10
    require_gateway_payment_to_complete: bool = True
    public_id_prefix: str = "PTG"

    # Route estimates used when no known route matches
    default_distance_km: float = 12.4
    default_duration_min: float = 28.0

    # Notifications: "log" or "redis"
    notification_backend: str = "log"
    redis_url: str = "redis://localhost:6379/0"
    notification_channel_prefix: str = "pickonthego"

    # API
    rate_limit: str = "100/minute"
    log_level: str = "INFO"
    seed_demo_data: bool = True

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
