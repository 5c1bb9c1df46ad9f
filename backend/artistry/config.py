from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # App
    APP_ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    BUSINESS_NAME: str = "Yemisi Artistry"

    # DB (in prod: the hosted Postgres connection string)
    DB_URL: str = "sqlite:///./artistry.db"

    # Admin panel guard: header X-Admin-Key. Empty in dev -> open.
    ADMIN_API_KEY: str | None = None

    # Email: "gmail" | "resend" | "log" (log = dev, message is only logged)
    EMAIL_PROVIDER: str = "log"
    EMAIL_FROM: str | None = None
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_REFRESH_TOKEN: str | None = None
    RESEND_API_KEY: str | None = None

    # Staff recipients for "new enquiry" alerts: CSV, ; or newline
    STAFF_EMAILS: str | None = None

    # Bulk slot generation
    SLOT_TEMPLATE: str = "09:00,11:00,13:00,15:00,17:00"
    LONG_SERVICE_KEYWORDS: str = "bridal"
    LONG_SERVICE_MINUTES: int = 120
    DEFAULT_SERVICE_MINUTES: int = 90
    SLOT_BULK_MAX_DAYS: int = 92


settings = Settings()
