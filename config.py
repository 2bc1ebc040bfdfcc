import re
from datetime import timedelta
from typing import List

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhdw]?)\s*$")
_DURATION_UNITS = {"": "seconds", "s": "seconds", "m": "minutes", "h": "hours", "d": "days", "w": "weeks"}


def parse_duration(value: str) -> timedelta:
    """Parse a short duration such as ``7d``, ``12h``, ``30m`` or ``3600``."""
    match = _DURATION_RE.match(str(value).lower())
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


def parse_cors_origins(value: str) -> List[str]:
    return [origin.strip().rstrip("/") for origin in value.split(",") if origin.strip()]


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Application
    APP_NAME: str = "Homie-Do API"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    PORT: int = 5500

    # Frontend (CORS origin and password reset links)
    CLIENT_URL: str = "http://localhost:5173"
    CORS_ORIGINS: str = ""

    # Database
    DATABASE_URL: str = ""
    DATABASE_NAME: str = "homie_do"

    # Authentication
    JWT_SECRET: str = ""
    JWT_EXPIRES_IN: str = "7d"
    JWT_ALGORITHM: str = "HS256"
    BCRYPT_ROUNDS: int = 10
    PASSWORD_RESET_EXPIRE_MINUTES: int = 10

    # Google sign-in
    GOOGLE_CLIENT_ID: str = ""

    # Email (SMTP)
    EMAIL_USER: str = ""
    EMAIL_PASSWORD: str = ""
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    EMAIL_FROM_NAME: str = "Homie-Do"

    # Chatbot
    CHATBOT_API_KEY: str = ""
    CHATBOT_MODEL: str = "gemini-1.5-flash-latest"
    CHATBOT_MAX_CONTEXT_CHARS: int = 10000
    CHATBOT_DOWNLOAD_TIMEOUT: int = 30

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = ""

    @model_validator(mode="after")
    def require_jwt_secret_in_production(self):
        if self.ENVIRONMENT.lower() == "production" and not self.JWT_SECRET:
            raise ValueError("JWT_SECRET must be set in production")
        return self

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def jwt_expires_delta(self) -> timedelta:
        return parse_duration(self.JWT_EXPIRES_IN)

    @property
    def cors_origins(self) -> List[str]:
        origins = parse_cors_origins(self.CORS_ORIGINS) if self.CORS_ORIGINS else []
        client = self.CLIENT_URL.rstrip("/")
        if client and client not in origins:
            origins.append(client)
        return origins

    @property
    def log_format(self) -> str:
        if self.LOG_FORMAT:
            return self.LOG_FORMAT.lower()
        return "json" if self.ENVIRONMENT.lower() == "production" else "text"


settings = Settings()
