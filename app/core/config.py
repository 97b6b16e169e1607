import os
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

class Settings:
    ENV: str = os.getenv("ENV", "local")
    APP_NAME: str = os.getenv("APP_NAME", "Studio")

    # Database
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL")
    DATABASE_ECHO: bool = os.getenv("DATABASE_ECHO", "False").lower() == "true"
    DATABASE_POOL_SIZE: int = int(os.getenv("DATABASE_POOL_SIZE", 20))
    DATABASE_MAX_OVERFLOW: int = int(os.getenv("DATABASE_MAX_OVERFLOW", 10))

    # Session tokens
    SECRET_KEY: Optional[str] = os.getenv("SECRET_KEY")
    ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
    SESSION_MAX_AGE_DAYS: int = int(os.getenv("SESSION_MAX_AGE_DAYS", 30))
    SESSION_HIJACK_MAX_AGE_HOURS: int = int(os.getenv("SESSION_HIJACK_MAX_AGE_HOURS", 24))

    # CSRF tokens
    CSRF_SECRET: Optional[str] = os.getenv("CSRF_SECRET")
    CSRF_TOKEN_MAX_AGE_MINUTES: int = int(os.getenv("CSRF_TOKEN_MAX_AGE_MINUTES", 60))

    # Anomaly detection
    SUSPICIOUS_WINDOW_MINUTES: int = int(os.getenv("SUSPICIOUS_WINDOW_MINUTES", 60))
    FAILED_LOGIN_THRESHOLD: int = int(os.getenv("FAILED_LOGIN_THRESHOLD", 5))
    DISTINCT_IP_THRESHOLD: int = int(os.getenv("DISTINCT_IP_THRESHOLD", 3))

    # Cloudflare Turnstile
    TURNSTILE_SECRET_KEY: Optional[str] = os.getenv("TURNSTILE_SECRET_KEY")
    TURNSTILE_VERIFY_URL: str = os.getenv(
        "TURNSTILE_VERIFY_URL",
        "https://challenges.cloudflare.com/turnstile/v0/siteverify",
    )
    TURNSTILE_TIMEOUT_SECONDS: float = float(os.getenv("TURNSTILE_TIMEOUT_SECONDS", 10))

    # Admin (fixed operator credentials)
    ADMIN_EMAIL: Optional[str] = os.getenv("ADMIN_EMAIL")
    ADMIN_PASSWORD: Optional[str] = os.getenv("ADMIN_PASSWORD")

    # Google OAuth
    GOOGLE_CLIENT_ID: Optional[str] = os.getenv("GOOGLE_CLIENT_ID")

    # CORS
    BACKEND_CORS_ORIGINS: Optional[str] = os.getenv("BACKEND_CORS_ORIGINS")

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = os.getenv("RATE_LIMIT_ENABLED", "True").lower() == "true"
    RATE_LIMIT_BACKEND: str = os.getenv("RATE_LIMIT_BACKEND", "memory")
    AUTH_RATE_LIMIT_REQUESTS: int = int(os.getenv("AUTH_RATE_LIMIT_REQUESTS", 5))
    AUTH_RATE_LIMIT_PERIOD_SECONDS: int = int(os.getenv("AUTH_RATE_LIMIT_PERIOD_SECONDS", 15 * 60))
    API_RATE_LIMIT_REQUESTS: int = int(os.getenv("API_RATE_LIMIT_REQUESTS", 100))
    API_RATE_LIMIT_PERIOD_SECONDS: int = int(os.getenv("API_RATE_LIMIT_PERIOD_SECONDS", 60))

    # Redis
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "json")


settings = Settings()
