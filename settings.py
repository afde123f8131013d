"""
settings.py - Process configuration read from the environment.

Values come from the process environment, plus a .env file in the working
directory if one exists (already-set variables win). Read once at startup by
load_settings(); everything downstream receives the Settings object instead
of calling os.getenv itself.
"""

from __future__ import annotations

import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

try:
    load_dotenv()
except UnicodeDecodeError:
    # Fallback for legacy Windows-encoded .env files.
    load_dotenv(encoding="cp1252")

DEFAULT_PROJECT_ID = "YOUR_PROJECT_ID"
DEFAULT_PORT = 8080
STORE_BACKENDS = {"firestore", "memory"}
TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Resolved runtime configuration."""

    model_config = ConfigDict(frozen=True)

    project_id: str = DEFAULT_PROJECT_ID
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    store_backend: str = "firestore"
    seed_file: Optional[str] = None
    log_level: str = "INFO"
    log_json: bool = False

    @field_validator("store_backend", mode="before")
    @classmethod
    def _check_backend(cls, value: object) -> str:
        text = str(value or "").strip().lower() or "firestore"
        if text not in STORE_BACKENDS:
            raise ValueError(
                f"CUSTOMER_STORE must be one of {sorted(STORE_BACKENDS)}, got {value!r}"
            )
        return text


def _env(environ: Mapping[str, str], name: str) -> str:
    return str(environ.get(name, "") or "").strip()


def resolve_project_id(environ: Optional[Mapping[str, str]] = None) -> str:
    """GOOGLE_CLOUD_PROJECT, then PROJECT_ID, then the placeholder."""
    environ = os.environ if environ is None else environ
    return (
        _env(environ, "GOOGLE_CLOUD_PROJECT")
        or _env(environ, "PROJECT_ID")
        or DEFAULT_PROJECT_ID
    )


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from environment variables (blank values count as unset)."""
    environ = os.environ if environ is None else environ

    port_raw = _env(environ, "PORT")
    try:
        port = int(port_raw) if port_raw else DEFAULT_PORT
    except ValueError as exc:
        raise ValueError(f"PORT must be an integer, got {port_raw!r}") from exc

    return Settings(
        project_id=resolve_project_id(environ),
        port=port,
        store_backend=_env(environ, "CUSTOMER_STORE") or "firestore",
        seed_file=_env(environ, "CUSTOMER_SEED_FILE") or None,
        log_level=_env(environ, "LOG_LEVEL") or "INFO",
        log_json=_env(environ, "LOG_JSON").lower() in TRUTHY,
    )
