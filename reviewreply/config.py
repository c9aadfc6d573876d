from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Storage: DATABASE_URL selects Postgres, otherwise JSON files under DATA_DIR
    DATABASE_URL: str | None = None
    DATA_DIR: str = "."

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 10
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    # Auto-reply scheduler
    AUTO_REPLY_ENABLED: bool = False
    AUTO_REPLY_INTERVAL_MINUTES: int = 30
    AUTO_REPLY_RATINGS: str = "1,2,3,4,5"
    AUTO_REPLY_ACCOUNT_ID: str | None = None
    AUTO_REPLY_LOCATION_ID: str | None = None

    # Campaign scheduler (tick is fixed at one hour)
    CAMPAIGN_SCHEDULER_ENABLED: bool = True
    CAMPAIGN_TIMEZONE: str = "UTC"

    TRIAL_DAYS: int = 30

    # Reply generation
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    REPLY_MAX_CHARS: int = 500
    TEXT_GENERATION_TIMEOUT_SECONDS: float = 30.0

    # Google Business Profile OAuth client
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_REDIRECT_URI: str | None = None

    # Campaign + alert email (Resend)
    PRODUCT_NAME: str = "ReviewReply"
    RESEND_API_KEY: str | None = None
    ALERT_FROM_EMAIL: str = "ReviewReply <onboarding@resend.dev>"
    BASE_URL: str = "http://localhost:8000"
    UNSUBSCRIBE_SECRET: str | None = None
    CAMPAIGN_FOOTER_ADDRESS: str = ""

    # Operator alerts
    ALERT_EMAIL: str | None = None
    ALERT_PHONE: str | None = None
    TWILIO_ACCOUNT_SID: str | None = None
    TWILIO_AUTH_TOKEN: str | None = None
    TWILIO_FROM_NUMBER: str | None = None

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def use_database(self) -> bool:
        """True when a relational store is configured for this process."""
        return bool(self.DATABASE_URL)

    def data_path(self, filename: str) -> Path:
        return Path(self.DATA_DIR) / filename

    def allowed_ratings(self) -> set[int]:
        """
        Parse AUTO_REPLY_RATINGS into a set of star ratings.
        Entries that are not integers are ignored.
        """
        ratings = set()
        for part in self.AUTO_REPLY_RATINGS.split(","):
            part = part.strip()
            try:
                ratings.add(int(part))
            except ValueError:
                continue
        return ratings

    def auto_reply_interval_seconds(self) -> int:
        return max(1, self.AUTO_REPLY_INTERVAL_MINUTES) * 60

    def legacy_tenant(self) -> tuple[str, str] | None:
        """Single account/location pair used when no tenant is eligible."""
        if self.AUTO_REPLY_ACCOUNT_ID and self.AUTO_REPLY_LOCATION_ID:
            return self.AUTO_REPLY_ACCOUNT_ID, self.AUTO_REPLY_LOCATION_ID
        return None

    def google_redirect_uri(self) -> str:
        return self.GOOGLE_REDIRECT_URI or f"{self.BASE_URL.rstrip('/')}/auth/google/callback"

    def unsubscribe_secret(self) -> str:
        return self.UNSUBSCRIBE_SECRET or self.RESEND_API_KEY or "reviewreply-unsubscribe"

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            config.update({"min_size": 1, "max_size": 5, "timeout": 15.0})

        return config


settings = Settings()
