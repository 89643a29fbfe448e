from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"  # local|test|staging|production
    APP_NAME: str = "Bunyod Tour Payments API"
    # Comma-separated origins for CORS (e.g. https://bunyodtour.tj,https://admin.bunyodtour.tj). If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_TASK_ALWAYS_EAGER: bool = False  # run side effects inline (tests / single-process dev)

    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "booking@bunyodtour.local"

    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = ""
    ADMIN_EMAIL: str = "admin@bunyodtour.tj"

    # Reverse proxies in front of the API that append to X-Forwarded-For; 0 = use the socket peer
    TRUSTED_PROXY_HOPS: int = 0

    BASE_URL: str = "https://api.bunyodtour.tj"  # used for gateway callback URLs
    FRONTEND_URL: str = "https://bunyodtour.tj"  # used for customer return URLs

    # AlifPay legacy form gateway
    ALIF_MERCHANT_KEY: str = ""
    ALIF_MERCHANT_PASSWORD: str = ""
    ALIF_FORM_URL: str = "https://web.alif.tj/"
    ALIF_GATE: str = "vsa"
    ALIF_CALLBACK_IPS: str = ""  # comma-separated allow-list; empty = loopback only
    ALIF_CALLBACK_VERIFY: bool = False  # require callback token HMAC

    # Payler session gateway
    PAYLER_KEY: str = ""
    PAYLER_PASSWORD: str = ""  # needed for refunds only
    PAYLER_BASE_URL: str = "https://secure.payler.com"
    PAYLER_CALLBACK_IPS: str = "178.20.235.180"

    GATEWAY_TIMEOUT: int = 25
    RETRY_ATTEMPTS: int = 3
    RETRY_BASE_DELAY: float = 0.5
    RECONCILE_STALE_MINUTES: int = 10  # poll Payler for orders stuck in processing longer than this

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() in ("prod", "production")


def split_csv(value: str) -> list[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


settings = Settings()
