"""Centralized configuration for the cohort data engine.

Loads an optional ``.env`` once on import, then reads settings from the
environment through Pydantic Settings.

Usage:
    from cohort_engine.config import settings

    timeout = settings.COHORT_REQUEST_TIMEOUT_SECONDS
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


# =============================================================================
# Environment Loading
# =============================================================================
# 1. backend/.env
# 2. project_root/.env
# 3. Environment variables only
# =============================================================================

def _find_and_load_dotenv() -> Path | None:
    """Find and load the first .env file, backend first.

    Returns:
        Path to loaded .env file, or None if not found
    """
    # This file is in backend/src/cohort_engine/
    backend_dir = Path(__file__).parent.parent.parent

    for candidate in (backend_dir / ".env", backend_dir.parent / ".env"):
        if candidate.exists():
            load_dotenv(candidate, override=False)
            logger.debug("Loaded environment from %s", candidate)
            return candidate

    return None


_DOTENV_PATH = _find_and_load_dotenv()


class Settings(BaseSettings):
    """Engine settings with automatic environment variable loading.

    Attributes:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
        COHORT_REQUEST_TIMEOUT_SECONDS: Seconds before a pending request is
            rejected; None or <= 0 disables the timeout
        COHORT_WORKER_NAME: Name of the worker thread
        COHORT_WORKER_JOIN_TIMEOUT_SECONDS: Seconds to wait for the worker
            thread on close
        COHORT_DIAGNOSTICS_LIMIT: Most recent protocol errors kept by the
            engine; older ones are discarded
    """

    model_config = SettingsConfigDict(
        env_file=None,  # Already loaded by _find_and_load_dotenv()
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level",
        validation_alias="LOG_LEVEL",
    )

    COHORT_REQUEST_TIMEOUT_SECONDS: Optional[float] = Field(
        default=60.0,
        description="Seconds before a pending request is rejected",
        validation_alias="COHORT_REQUEST_TIMEOUT_SECONDS",
    )

    COHORT_WORKER_NAME: str = Field(
        default="cohort-data-worker",
        description="Name of the worker thread",
        validation_alias="COHORT_WORKER_NAME",
    )

    COHORT_WORKER_JOIN_TIMEOUT_SECONDS: float = Field(
        default=5.0,
        ge=0,
        description="Seconds to wait for the worker thread on close",
        validation_alias="COHORT_WORKER_JOIN_TIMEOUT_SECONDS",
    )

    COHORT_DIAGNOSTICS_LIMIT: int = Field(
        default=100,
        ge=1,
        description="Most recent protocol errors kept in engine diagnostics",
        validation_alias="COHORT_DIAGNOSTICS_LIMIT",
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level

    @property
    def request_timeout(self) -> float | None:
        """Effective request timeout, None when disabled."""
        timeout = self.COHORT_REQUEST_TIMEOUT_SECONDS
        if timeout is None or timeout <= 0:
            return None
        return timeout

    def get_env_file_path(self) -> Path | None:
        return _DOTENV_PATH


# Module-level instance used when the engine is created without settings
settings = Settings()


__all__ = ["Settings", "settings"]
