"""
Runtime configuration for the storefront services.

Everything is read from environment variables (a local .env file is loaded
first for development). Payment credentials are allowed to be empty here:
the code paths that need them raise ConfigurationError at call time instead
of crashing the whole process on import.
"""
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    user = os.getenv("POSTGRES_USER", "postgres")
    password = os.getenv("POSTGRES_PASSWORD", "postgres")
    host = os.getenv("POSTGRES_HOST", "localhost")  # In Docker, this will be 'postgres'
    port = os.getenv("POSTGRES_PORT", "5433")
    name = os.getenv("POSTGRES_DB", "storefront")
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


@dataclass(frozen=True)
class Settings:
    database_url: str
    sql_echo: bool

    razorpay_key_id: str
    razorpay_key_secret: str
    razorpay_api_url: str
    currency: str

    brevo_api_key: str
    brevo_api_url: str
    brevo_from_email: str
    brevo_from_name: str
    brevo_reply_to: str
    brevo_timeout_ms: int
    email_max_attempts: int
    email_backoff_seconds: float

    store_name: str
    support_email: str
    site_url: str
    default_country: str

    jwt_secret_key: str
    jwt_algorithm: str
    internal_api_key: str
    rate_limit_enabled: bool

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=_database_url(),
            sql_echo=os.getenv("SQL_ECHO", "false").lower() == "true",
            razorpay_key_id=os.getenv("RAZORPAY_KEY_ID", ""),
            razorpay_key_secret=os.getenv("RAZORPAY_KEY_SECRET", ""),
            razorpay_api_url=os.getenv("RAZORPAY_API_URL", "https://api.razorpay.com/v1"),
            currency=os.getenv("PAYMENT_CURRENCY", "INR"),
            brevo_api_key=os.getenv("BREVO_API_KEY", ""),
            brevo_api_url=os.getenv("BREVO_API_URL", "https://api.brevo.com/v3"),
            brevo_from_email=os.getenv("BREVO_FROM_EMAIL", "noreply@mscrafts.com"),
            brevo_from_name=os.getenv("BREVO_FROM_NAME", "MS CRAFTS"),
            brevo_reply_to=os.getenv("BREVO_REPLY_TO", ""),
            brevo_timeout_ms=int(os.getenv("BREVO_TIMEOUT_MS", "60000")),
            email_max_attempts=int(os.getenv("EMAIL_MAX_ATTEMPTS", "3")),
            email_backoff_seconds=float(os.getenv("EMAIL_BACKOFF_SECONDS", "3")),
            store_name=os.getenv("STORE_NAME", "MS CRAFTS"),
            support_email=os.getenv("STORE_SUPPORT_EMAIL", "support@mscrafts.com"),
            site_url=os.getenv("NEXT_PUBLIC_SITE_URL", "http://localhost:3000"),
            default_country=os.getenv("DEFAULT_COUNTRY", "India"),
            jwt_secret_key=os.getenv("JWT_SECRET_KEY", ""),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            internal_api_key=os.getenv("INTERNAL_API_KEY", ""),
            rate_limit_enabled=os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true",
        )


settings = Settings.from_env()
