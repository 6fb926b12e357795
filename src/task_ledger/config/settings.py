"""Application settings."""

from functools import lru_cache
import logging
import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "task-ledger"
    app_env: str = "dev"
    app_debug: bool = False
    log_level: str = "INFO"
    storage_backend: Literal["memory", "json", "postgres"] = "json"
    data_dir: Path = Path(".task-ledger")
    database_url: str = ""
    lock_timeout_s: float = Field(default=5.0, gt=0.0)
    check_timeout_s: float = Field(default=30.0, gt=0.0)
    readiness_timeout_s: float = Field(default=5.0, gt=0.0)
    worker_timeout_s: float = Field(default=600.0, gt=0.0)
    max_coordinator_loops: int = Field(default=10, ge=1)
    verification_mode: Literal["command", "none"] = "none"
    # Programs command mode may launch, matched against argv[0]; empty runs nothing.
    command_allowlist: list[str] = Field(default_factory=list)

    model_config = SettingsConfigDict(
        env_prefix="TASK_LEDGER_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("DATABASE_URL", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def configure_logging(settings: Settings) -> None:
    """Set the root log level once; leave handlers installed by the host alone."""
    level = logging.DEBUG if settings.app_debug else settings.log_level.upper()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    else:
        root.setLevel(level)
