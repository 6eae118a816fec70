"""
Process configuration for the billing sync service.

Settings are read from the environment once at startup (after load_dotenv)
and handed to request handlers through the get_settings dependency.
"""
import os
from typing import Mapping

from pydantic import BaseModel

from app.core.errors import ConfigurationError

DODO_LIVE_BASE_URL = "https://live.dodopayments.com"
DODO_TEST_BASE_URL = "https://test.dodopayments.com"


def _normalize_database_url(url: str | None) -> str | None:
    if not url:
        return None
    url = url.strip()
    # Supabase hands out postgres:// URLs; SQLAlchemy wants postgresql://
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url or None


def _int_env(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _float_env(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


class Settings(BaseModel):
    database_url: str | None = None
    dodo_api_key: str = ""
    dodo_base_url: str = DODO_TEST_BASE_URL
    dodo_timeout_seconds: float = 15.0
    dodo_page_size: int = 100
    dodo_max_pages: int = 10
    cors_origins: list[str] = ["*"]
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environment variables (os.environ by default)."""
        env = os.environ if environ is None else environ

        # Prefer the new env var name, but fall back to the old one.
        # Strip whitespace to avoid invisible copy/paste errors.
        api_key = (env.get("DODO_PAYMENTS_API_KEY") or env.get("DODO_API_KEY") or "").strip()

        base_url = (env.get("DODO_BASE_URL") or "").strip().rstrip("/")
        if not base_url:
            live = (env.get("DODO_LIVE") or "").strip().lower() == "true"
            base_url = DODO_LIVE_BASE_URL if live else DODO_TEST_BASE_URL

        origins = [o.strip() for o in (env.get("CORS_ORIGINS") or "*").split(",") if o.strip()]

        return cls(
            database_url=_normalize_database_url(env.get("DATABASE_URL")),
            dodo_api_key=api_key,
            dodo_base_url=base_url,
            dodo_timeout_seconds=_float_env(env, "DODO_TIMEOUT_SECONDS", 15.0),
            dodo_page_size=_int_env(env, "DODO_PAGE_SIZE", 100),
            dodo_max_pages=_int_env(env, "DODO_MAX_PAGES", 10),
            cors_origins=origins or ["*"],
            log_level=(env.get("LOG_LEVEL") or "INFO").strip().upper(),
        )

    @property
    def dodo_configured(self) -> bool:
        return bool(self.dodo_api_key and self.dodo_base_url)

    def require_database_url(self) -> str:
        if not self.database_url:
            raise ConfigurationError("Server misconfigured: missing DATABASE_URL")
        return self.database_url

    def require_dodo_api_key(self) -> str:
        if not self.dodo_api_key:
            raise ConfigurationError("Server misconfigured: missing DODO_PAYMENTS_API_KEY")
        return self.dodo_api_key

    def describe(self) -> dict:
        """Loggable view of the settings without leaking secrets."""
        return {
            "database_url_set": bool(self.database_url),
            "dodo_api_key_set": bool(self.dodo_api_key),
            "dodo_base_url": self.dodo_base_url,
            "dodo_page_size": self.dodo_page_size,
            "dodo_max_pages": self.dodo_max_pages,
            "log_level": self.log_level,
        }
