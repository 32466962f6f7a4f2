"""Environment-driven defaults for cadence.

Call sites always state their own limits; ``CadenceSettings`` only supplies
defaults for the ``from_settings()`` constructors and for logging setup, so a
deployment can tune them with ``CADENCE_*`` environment variables or a
``.env`` file.

Manifesto:
    - **Pydantic validation:** A bad ``CADENCE_RETRY_ATTEMPTS`` fails at startup
    - **Environment-driven:** Reads env vars and .env files
    - **Extra ignore:** Unknown env vars don't cause startup failures

Examples:
    >>> from cadence.core.settings import CadenceSettings
    >>> CadenceSettings(default_concurrency=4).default_concurrency
    4

Tags:
    settings, configuration, pydantic, environment, cadence
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CadenceSettings(BaseSettings):
    """Defaults shared by every cadence primitive.

    Fields
    ──────
    log_level              : structlog log level
    json_logs              : force JSON (True) / console (False); None = auto
    service                : service name stamped on every log line
    default_concurrency    : limit used by ``BoundedConcurrencyExecutor.from_settings``
    retry_attempts         : attempts used by ``RetryExecutor.from_settings``
    retry_delay            : seconds between attempts for ``RetryExecutor.from_settings``
    keyed_cleanup_interval : calls between idle-key sweeps in ``KeyedThrottle``
    """

    model_config = SettingsConfigDict(
        env_prefix="CADENCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None
    service: str = "cadence"

    # ── Flow control ─────────────────────────────────────────────
    default_concurrency: int = Field(default=10, gt=0)
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=0.0, ge=0.0)
    keyed_cleanup_interval: int = Field(default=1000, gt=0)


@lru_cache(maxsize=1)
def get_settings() -> CadenceSettings:
    """Return the process-wide settings instance."""
    return CadenceSettings()


__all__ = ["CadenceSettings", "get_settings"]
