from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Required for credit RPCs and webhook writes

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""

    # Shared secrets for machine callers
    cron_secret: str = ""  # x-cron-secret on /sync routes
    internal_api_secret: str = ""  # x-internal-secret from the processing worker

    # Models
    enable_premium_models: bool = False

    # pSEO
    pseo_data_dir: Optional[str] = None  # Defaults to app/modules/pseo/data

    # App
    app_name: str = "PixelPerfect"
    app_url: str = "http://localhost:3000"
    debug: bool = False
    environment: str = "development"  # development | staging | production | test
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"
    public_rate_limit: str = "10/10seconds"
    user_rate_limit: str = "50/10seconds"
    limits_cleanup_interval_seconds: int = 300
    sync_stripe_delay_seconds: float = 0.1  # pause between Stripe calls during reconciliation

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",
        extra="ignore"
    )


settings = Settings()
