from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    env: str = "dev"
    database_url: str = "sqlite:///./data/aerowizard.db"

    scheduler_enabled: bool = True
    price_check_cron_hours: str = "*/4"
    flight_check_interval_minutes: int = 30
    weekly_summary_enabled: bool = True

    # Throttles between batch items (provider rate limit)
    alert_check_delay_seconds: float = 2.0
    track_check_delay_seconds: float = 2.0
    segment_check_delay_seconds: float = 1.5

    # Price alert policy
    significant_drop_amount: int = 50
    significant_drop_percent: int = 20

    # Flight status policy
    status_change_threshold_minutes: int = 10
    status_heartbeat_hours: int = 24

    booking_horizon_days: int = 330

    amadeus_client_id: str = ""
    amadeus_client_secret: str = ""
    amadeus_base_url: str = "https://api.amadeus.com"
    amadeus_min_request_interval: float = 1.0
    amadeus_token_refresh_minutes: int = 25
    amadeus_currency: str = "USD"

    telegram_bot_token: str = ""
    telegram_webhook_url: str = ""
    telegram_webhook_secret: str = ""
    bot_username: str = "aerowizard_bot"
    support_contact: str = "@aerowizard_support"

    cron_secret: str = ""

    def model_post_init(self, __context):
        if self.env == "prod" and self.database_url.startswith("sqlite"):
            raise ValueError(
                "Production requires explicit DATABASE_URL (not SQLite)"
            )

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
