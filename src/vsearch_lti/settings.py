"""
Central configuration for the grade passback service.

All settings are read from environment variables with the ``VSG_`` prefix
(e.g. ``VSG_ENV=prod``, ``VSG_REDIS_URL=...``).  Pydantic validates and
casts values on startup.

Usage::

    from vsearch_lti.settings import get_settings
    settings = get_settings()
    print(settings.env, settings.redis_url)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from ``VSG_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="VSG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Environment ──────────────────────────────────────────────────
    env: Literal["local", "dev", "prod"] = "local"
    host: str = "0.0.0.0"
    port: int = 3000

    # ── Redis ────────────────────────────────────────────────────────
    # Holds launch contexts (pylti1p3 cache) and the platform trust store.
    redis_url: str = "redis://localhost:6379/0"
    launch_ttl: int = 7200

    # ── Platforms ────────────────────────────────────────────────────
    # "name,url,clientId,authEndpoint,tokenEndpoint,jwksKey[,dep1|dep2];..."
    # Empty string = rely on dynamic registration only.
    platforms: str = ""

    # ── LTI keys ─────────────────────────────────────────────────────
    # Values starting with "-----BEGIN" are treated as PEM strings;
    # otherwise they are read as file paths.
    lti_private_key: str = "configs/lti/private.key"
    lti_public_key: str = "configs/lti/public.key"

    # ── Frontend ─────────────────────────────────────────────────────
    frontend_url: str = "http://localhost:3000/static/index.html"

    # ── CORS / CSP ───────────────────────────────────────────────────
    cors_origins: list[str] = ["*"]
    csp_frame_ancestors: str = "*"

    # ── Logging ──────────────────────────────────────────────────────
    log_level: str = "INFO"
    # Empty string = console only.
    log_dir: str = ""

    # ── Startup validation ───────────────────────────────────────────

    @model_validator(mode="after")
    def _validate_config(self) -> Settings:
        """
        Fail fast if required settings are missing or misconfigured.

        All errors are collected before raising so a single startup failure
        reveals every problem at once.
        """
        errors: list[str] = []

        if self.launch_ttl <= 0:
            errors.append("VSG_LAUNCH_TTL must be a positive number of seconds")

        if self.env != "local":
            if "localhost" in self.redis_url or "127.0.0.1" in self.redis_url:
                errors.append(
                    "VSG_REDIS_URL must not point to localhost "
                    f"(env={self.env!r}: launches and the platform store live there)"
                )

            if not self.lti_private_key.startswith("-----BEGIN"):
                errors.append(
                    f"VSG_LTI_PRIVATE_KEY must be a PEM string in env={self.env!r}"
                )

            if not self.lti_public_key.startswith("-----BEGIN"):
                errors.append(
                    f"VSG_LTI_PUBLIC_KEY must be a PEM string in env={self.env!r}"
                )

        if self.env == "prod" and self.cors_origins == ["*"]:
            errors.append("VSG_CORS_ORIGINS must not be ['*'] in prod")

        if errors:
            raise ValueError(
                f"[VSG env={self.env!r}] Configuration errors, fix before deploying:\n  - "
                + "\n  - ".join(errors)
            )

        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached application settings singleton."""
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (for testing)."""
    get_settings.cache_clear()
