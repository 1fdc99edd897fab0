"""Centralized settings for exclog."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def runtime_root() -> Path:
    """Directory used for `.env` and default storage (next to the executable when frozen)."""
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path.cwd()


env_file = runtime_root() / ".env"
if env_file.exists():
    # Use utf-8-sig to tolerate a BOM written by some Windows editors.
    load_dotenv(env_file, override=False, encoding="utf-8-sig")


class ExclogSettings(BaseSettings):
    """Settings loaded from EXCLOG_* environment variables."""

    model_config = SettingsConfigDict(env_prefix="EXCLOG_", extra="ignore")

    connection_string: str = Field(
        default="",
        description="Telemetry destination, e.g. 'InstrumentationKey=...;IngestionEndpoint=https://...'.",
    )
    mode: str = Field(default="remote", description="Backend mode: remote|local|off")
    configuration: Dict[str, Any] = Field(
        default_factory=dict,
        description="Backend options passed through unchanged (JSON object in env).",
    )

    sqlite_path: Path = Field(
        default_factory=lambda: runtime_root() / "storage/exclog/exceptions.sqlite3",
        description="SQLite file used by the local backend.",
    )
    retention_days: int = Field(default=7)
    max_batch_size: int = Field(default=50, description="Envelopes buffered on the handle before a POST.")
    timeout_s: float = Field(default=3.0)
    flush_interval_ms: int = Field(default=1000, description="Background flush period of the remote handle.")

    install_global_hook: bool = Field(
        default=True,
        description="Intercept uncaught errors (sys/threading excepthook) while the client loads.",
    )

    server_host: str = Field(default="127.0.0.1")
    server_port: int = Field(default=5140)

    @field_validator("mode", mode="before")
    @classmethod
    def _coerce_mode(cls, v):
        # Treat empty env vars as "unset".
        if v is None or (isinstance(v, str) and not v.strip()):
            return "remote"
        return str(v).strip().lower()

    @field_validator("sqlite_path", mode="before")
    @classmethod
    def _coerce_sqlite_path(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return runtime_root() / "storage/exclog/exceptions.sqlite3"
        return v

    @field_validator("retention_days", "max_batch_size", mode="after")
    @classmethod
    def _at_least_one(cls, v):
        return max(1, int(v))

    @field_validator("flush_interval_ms", mode="after")
    @classmethod
    def _min_flush_interval(cls, v):
        return max(50, int(v))

    @field_validator("server_port", mode="after")
    @classmethod
    def _validate_server_port(cls, v):
        if not (1 <= v <= 65535):
            raise ValueError("server_port must be between 1 and 65535")
        return v

    def backend_options(self) -> Dict[str, Any]:
        """Options every backend understands; explicit `configuration` entries win."""
        return {
            "sqlite_path": str(self.sqlite_path),
            "retention_days": self.retention_days,
            "max_batch_size": self.max_batch_size,
            "timeout_s": self.timeout_s,
            "flush_interval_ms": self.flush_interval_ms,
        }


settings = ExclogSettings()
