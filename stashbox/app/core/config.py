# stashbox/app/core/config.py
"""
Application settings, loaded with pydantic-settings.

- SECRET_KEY and ENCRYPTION_KEY have dev defaults only; set both in production
- CORS origins come from a comma-separated env var and are never a wildcard
- Database URLs are rewritten to their async driver form
"""
from functools import lru_cache
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SQLITE_FALLBACK_URL = "sqlite+aiosqlite:///./stashbox.db"
DEFAULT_ENCRYPTION_KEY = "default_secret_key_should_be_32_chars_long_!!"


class Settings(BaseSettings):
    """
    Typed settings for the Stashbox API.

    Values are read from the environment first, then from ``.env``, and
    fall back to the defaults below (suitable for local development only).
    """

    # ─────────────────────────────────────────────────────────────
    # Service
    # ─────────────────────────────────────────────────────────────
    PROJECT_NAME: str = "Stashbox"
    PROJECT_VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"

    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # ─────────────────────────────────────────────────────────────
    # Identity: bearer tokens are issued by the identity provider
    # and verified here with the shared key.
    # ─────────────────────────────────────────────────────────────
    SECRET_KEY: str = "INSECURE_DEV_KEY_CHANGE_IN_PRODUCTION"
    ALGORITHM: str = "HS256"
    # Login endpoint of the identity provider, advertised in the OpenAPI docs
    AUTH_TOKEN_URL: str = "/api/v1/auth/login"

    # ─────────────────────────────────────────────────────────────
    # Field encryption
    # The key is stretched once with scrypt at startup. The salt and
    # cost parameters must never change for an existing database,
    # otherwise stored fields become unreadable.
    # ─────────────────────────────────────────────────────────────
    ENCRYPTION_KEY: str = DEFAULT_ENCRYPTION_KEY
    ENCRYPTION_SALT: str = "salt"
    SCRYPT_N: int = 2 ** 14
    SCRYPT_R: int = 8
    SCRYPT_P: int = 1

    # ─────────────────────────────────────────────────────────────
    # Limits for ephemeral content
    # ─────────────────────────────────────────────────────────────
    MAX_SECRET_VIEWS: int = 100
    MAX_SECRET_TTL_MINUTES: int = 60 * 24 * 30
    MAX_CONTENT_LENGTH: int = 1024 * 1024

    # ─────────────────────────────────────────────────────────────
    # Database
    # PostgreSQL (asyncpg) in production, a local SQLite file otherwise
    # ─────────────────────────────────────────────────────────────
    DATABASE_URL: str = SQLITE_FALLBACK_URL
    # Logs every SQL statement; leave off outside local debugging
    DATABASE_ECHO: bool = False

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def use_async_driver(cls, v: str) -> str:
        """
        Hosting providers hand out sync URLs; swap in the async driver.

            postgres://, postgresql://  -> postgresql+asyncpg://
            sqlite:///                  -> sqlite+aiosqlite:///
        """
        if v is None:
            return SQLITE_FALLBACK_URL

        url = v.strip()
        for prefix, driver in (
            ("postgres://", "postgresql+asyncpg://"),
            ("postgresql://", "postgresql+asyncpg://"),
            ("sqlite:///", "sqlite+aiosqlite:///"),
        ):
            if url.startswith(prefix):
                return driver + url[len(prefix):]
        return url

    # ─────────────────────────────────────────────────────────────
    # CORS
    # ─────────────────────────────────────────────────────────────
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def BACKEND_CORS_ORIGINS(self) -> List[str]:
        """Allowed origins; an empty CORS_ORIGINS disables CORS entirely."""
        return [origin.strip() for origin in (self.CORS_ORIGINS or "").split(",") if origin.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        # Unknown keys in the environment or .env are not an error
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Settings are read once per process."""
    return Settings()


settings = get_settings()
