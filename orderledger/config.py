"""Application settings loaded from the environment."""
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process-wide configuration, constructed once and passed to components."""

    app_name: str = Field(default="orderledger", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")

    # Push notifications
    notification_timeout_ms: int = Field(default=5000, gt=0, description="Per-delivery timeout (milliseconds)")
    notification_workers: int = Field(default=4, gt=0, description="Worker threads for fire-and-forget delivery")
    fcm_endpoint: str = Field(
        default="https://fcm.googleapis.com/v1/projects/orderledger/messages:send",
        description="FCM HTTP v1 send endpoint",
    )
    fcm_access_token: str = Field(default="", description="OAuth2 bearer token for FCM")

    # Orders and ledger
    order_transition_policy: str = Field(
        default="permissive", description="Order status transition policy (permissive/strict)"
    )
    transaction_page_max: int = Field(default=200, gt=0, description="Upper bound for transaction page size")

    model_config = SettingsConfigDict(
        env_prefix="ORDERLEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("order_transition_policy")
    @classmethod
    def validate_transition_policy(cls, v: str) -> str:
        if v.lower() not in ("permissive", "strict"):
            raise ValueError("order_transition_policy must be 'permissive' or 'strict'")
        return v.lower()

    @property
    def notification_timeout(self) -> float:
        return self.notification_timeout_ms / 1000

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Settings for the running process, loaded on first use."""
    return Settings()
