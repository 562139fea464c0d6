"""Runtime settings: an optional YAML file overlaid by environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import yaml

DEFAULT_UPLOADS_ROOT = "uploads"


@dataclass(frozen=True)
class Settings:
    uploads_root: Path
    database_path: str | None = None
    log_level: str = "INFO"


def _load_file(path: str | None) -> dict:
    if not path:
        return {}
    config_path = Path(path).expanduser()
    if not config_path.exists():
        return {}
    with config_path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{config_path}: expected a mapping at the top level")
    return data


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data = _load_file(os.getenv("LEDGER_CONFIG"))
    uploads_root = os.getenv("LEDGER_UPLOADS_ROOT") or data.get("uploads_root") or DEFAULT_UPLOADS_ROOT
    database_path = os.getenv("LEDGER_DATABASE") or data.get("database_path")
    log_level = os.getenv("LEDGER_LOG_LEVEL") or data.get("log_level") or "INFO"
    return Settings(
        uploads_root=Path(uploads_root).expanduser().resolve(),
        database_path=str(database_path) if database_path else None,
        log_level=str(log_level).upper(),
    )


def reset_settings() -> None:
    """Drop the cached settings (used in tests)."""

    get_settings.cache_clear()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or get_settings().log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def period_upload_dir(period_id: int) -> Path:
    return get_settings().uploads_root / str(period_id)


def adjustment_upload_dir(period_id: int) -> Path:
    return period_upload_dir(period_id) / "adjustments"
