from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Global SoloFlow settings.
    Values are read from the environment and from the .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Project
    project_name: str = "SoloFlow API"
    api_v1_str: str = "/api/v1"
    debug: bool = False

    # Security / JWT
    secret_key: str = "changeme"
    access_token_expire_minutes: int = 60
    refresh_token_expire_minutes: int = 10080
    algorithm: str = "HS256"

    # Database
    database_url: str = "sqlite:///./soloflow.db"

    # CORS
    allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:8080",
        "http://127.0.0.1:8080",
    ]
    public_app_url: str = "http://localhost:5173"

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Payment gateway (Razorpay)
    billing_gateway: str = "razorpay"
    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None
    razorpay_base_url: str = "https://api.razorpay.com/v1"
    razorpay_timeout_seconds: float = 15.0
    razorpay_webhook_secret: Optional[str] = None

    # Pro plan (amounts in paise)
    pro_plan_amount_paise: int = 79900
    pro_plan_currency: str = "INR"
    pro_plan_total_count: int = 12

    # Subscription lifecycle
    cancellation_period_days: int = 30
    admin_activation_days: int = 30
    checkout_poll_interval_seconds: float = 2.0
    checkout_poll_max_attempts: int = 15

    # Maintenance job
    scheduler_enabled: bool = True
    maintenance_cron_hour: int = 0
    maintenance_cron_minute: int = 0
    maintenance_token: Optional[str] = None

    def resolved_public_app_url(self) -> str:
        return (self.public_app_url or "").strip().rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Return the cached global settings instance."""
    return Settings()


settings = get_settings()
