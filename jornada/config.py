from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Optional .env next to the package; real environment variables win over it.
ENV_FILE = Path(__file__).resolve().parents[1] / ".env"


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./jornada.db"

    # "rotation" (16h rotation with reset) or "daily_cap" (4 marks per day, 5th rejected)
    classification_policy: str = "rotation"
    rotation_window_hours: int = 16
    max_daily_punches: int = 4

    stale_session_hours: int = 20
    # 9h ordinary day
    daily_ordinary_cap_minutes: int = 540
    default_weekly_hours: int = 40
    local_timezone: str = "America/Santiago"

    aggregate_write_retries: int = 3

    excessive_hours_minutes: int = 600
    missed_entry_grace_minutes: int = 15
    disconnect_hours: int = 12

    log_level: str = "INFO"


def _from_env(name: str, default):
    """Environment value for ``name`` coerced to the type of ``default``; unset or blank keeps the default."""
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring %s=%r, not a whole number; using %s", name, raw, default)
            return default
    return raw


def load_settings(env_file: Path | None = ENV_FILE) -> Settings:
    """Settings from the environment, one upper-case variable per field (DATABASE_URL, LOG_LEVEL, ...)."""
    if env_file is not None:
        load_dotenv(dotenv_path=env_file, override=False)
    defaults = Settings()
    loaded = Settings(**{
        f.name: _from_env(f.name.upper(), getattr(defaults, f.name)) for f in fields(Settings)
    })
    return replace(
        loaded,
        classification_policy=loaded.classification_policy.lower(),
        log_level=loaded.log_level.upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


settings = get_settings()
