"""
Configuration settings for the application
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Normalized plan IDs
PLAN_BASIC = "basic"
PLAN_PRO = "pro"

# Trial defaults
DEFAULT_TRIAL_DAYS = 7
DEFAULT_TRIAL_LIMIT = 20
DEFAULT_SWEEP_WINDOW_MINUTES = 60


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Core authentication and security
    jwt_secret_key: Optional[str] = Field(default=None, alias="JWT_SECRET_KEY")
    jwt_expire_days: int = Field(default=7, alias="JWT_EXPIRE_DAYS")

    # Shared secrets for machine callers (scheduler, identity provider hook)
    cron_secret: Optional[str] = Field(default=None, alias="CRON_SECRET")
    identity_hook_secret: Optional[str] = Field(default=None, alias="IDENTITY_HOOK_SECRET")

    # Stripe billing configuration
    stripe_secret_key: Optional[str] = Field(default=None, alias="STRIPE_SECRET_KEY")
    stripe_publishable_key: Optional[str] = Field(default=None, alias="STRIPE_PUBLISHABLE_KEY")
    stripe_webhook_secret: Optional[str] = Field(default=None, alias="STRIPE_WEBHOOK_SECRET")
    stripe_price_basic: Optional[str] = Field(default=None, alias="STRIPE_PRICE_BASIC")
    stripe_price_pro: Optional[str] = Field(default=None, alias="STRIPE_PRICE_PRO")
    stripe_timeout_seconds: float = Field(default=20.0, alias="STRIPE_TIMEOUT_SECONDS")

    # Trial lifecycle
    trial_days: int = Field(default=DEFAULT_TRIAL_DAYS, alias="TRIAL_DAYS")
    trial_limit: int = Field(default=DEFAULT_TRIAL_LIMIT, alias="TRIAL_LIMIT")
    sweep_window_minutes: int = Field(default=DEFAULT_SWEEP_WINDOW_MINUTES, alias="SWEEP_WINDOW_MINUTES")

    # Infrastructure configuration
    database_url: Optional[str] = Field(default="sqlite+aiosqlite:///./lawfirm.db", alias="DATABASE_URL")

    # Frontend configuration
    frontend_url: Optional[str] = Field(default="http://localhost:3000", alias="FRONTEND_URL")

    # Render.com deployment configuration
    render: Optional[str] = Field(default=None, alias="RENDER")
    render_external_url: Optional[str] = Field(default=None, alias="RENDER_EXTERNAL_URL")
    render_service_name: Optional[str] = Field(default=None, alias="RENDER_SERVICE_NAME")

    # Environment configuration
    env: Optional[str] = Field(default=None, alias="ENV")

    def price_for_plan(self, plan: str) -> Optional[str]:
        """Stripe price id for a plan, falling back to the basic price."""
        if plan == PLAN_PRO and self.stripe_price_pro:
            return self.stripe_price_pro
        return self.stripe_price_basic


# Instantiate settings object
settings = Settings()

# Determine if we're in production mode
IS_PRODUCTION = bool(settings.render) or bool(settings.env and settings.env.lower() == "production")
