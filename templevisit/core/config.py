from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "Temple Visit Booking API"
    # Comma-separated origins for CORS. If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""

    SECRET_KEY: str
    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    # Visit dates and slot start times are local to the temples
    TIMEZONE: str = "Asia/Kolkata"

    # Used for temples that have no explicit schedule overrides
    DEFAULT_SLOT_TIMES: str = "09:00,10:00,11:00,12:00,14:00,15:00,16:00,17:00"
    DEFAULT_SLOT_MINUTES: int = 60
    DEFAULT_SLOT_CAPACITY: int = 50

    # Unpaid bookings hold their visitors this long before expiring
    PENDING_HOLD_MINUTES: int = 15
    CURRENCY: str = "INR"

    # Razorpay (REST, basic auth)
    RAZORPAY_API_BASE: str = "https://api.razorpay.com"
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    RAZORPAY_TIMEOUT: int = 20
    RAZORPAY_MAX_RETRIES: int = 3

    # Ticket QR signature; falls back to SECRET_KEY
    TICKET_SIGNING_KEY: str = ""

    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_TO_FILES: bool = True

    @property
    def ticket_key(self) -> str:
        return self.TICKET_SIGNING_KEY or self.SECRET_KEY


settings = Settings()
