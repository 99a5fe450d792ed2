# habit_config.py
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from habit_store import DEFAULT_STORAGE_KEY
from streaks import DEFAULT_MAX_STREAK_DAYS, MAX_HEATMAP_DAYS, StreakPolicy

STORAGE_BACKENDS = ("file", "sqlite", "memory")


def _get_int(environ: Mapping[str, str], name: str, default: int, minimum: int = 1) -> int:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be at least {minimum}, got {value}")
    return value


def _get_bool(environ: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Runtime configuration, read from the environment (and a .env file if present)."""
    storage_backend: str = "file"
    data_dir: Path = Path("data")
    database_url: str = "sqlite:///habits.db"
    storage_key: str = DEFAULT_STORAGE_KEY
    streak_policy: StreakPolicy = StreakPolicy.ALL_HABITS
    heatmap_days: int = 90
    max_streak_days: int = DEFAULT_MAX_STREAK_DAYS
    log_level: str = "INFO"
    secret_key: str = "dev-secret-key-change-this-in-production"
    host: str = "127.0.0.1"
    port: int = 5000
    debug: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        if environ is None:
            load_dotenv()
            environ = os.environ

        backend = environ.get("HABIT_STORAGE_BACKEND", cls.storage_backend).strip().lower()
        if backend not in STORAGE_BACKENDS:
            raise ValueError(f"HABIT_STORAGE_BACKEND must be one of {', '.join(STORAGE_BACKENDS)}, got {backend!r}")

        policy = environ.get("HABIT_STREAK_POLICY", cls.streak_policy.value).strip().lower()
        try:
            streak_policy = StreakPolicy(policy)
        except ValueError:
            raise ValueError(f"HABIT_STREAK_POLICY must be 'all_habits' or 'per_habit', got {policy!r}") from None

        heatmap_days = _get_int(environ, "HABIT_HEATMAP_DAYS", cls.heatmap_days)
        if heatmap_days > MAX_HEATMAP_DAYS:
            raise ValueError(f"HABIT_HEATMAP_DAYS must be at most {MAX_HEATMAP_DAYS}, got {heatmap_days}")

        log_level = environ.get("LOG_LEVEL", cls.log_level).strip().upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ValueError(f"LOG_LEVEL is not a logging level: {log_level!r}")

        return cls(
            storage_backend=backend,
            data_dir=Path(environ.get("HABIT_DATA_DIR") or cls.data_dir),
            database_url=environ.get("HABIT_DATABASE_URL") or cls.database_url,
            storage_key=environ.get("HABIT_STORAGE_KEY") or cls.storage_key,
            streak_policy=streak_policy,
            heatmap_days=heatmap_days,
            max_streak_days=_get_int(environ, "HABIT_MAX_STREAK_DAYS", cls.max_streak_days),
            log_level=log_level,
            secret_key=environ.get("SECRET_KEY") or cls.secret_key,
            host=environ.get("HOST") or cls.host,
            port=_get_int(environ, "PORT", cls.port),
            debug=_get_bool(environ, "FLASK_DEBUG"),
        )


def setup_logging(level: str = "INFO") -> logging.Logger:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    return logging.getLogger("habit_tracker")


def make_storage(settings: Settings):
    """Build the persistence collaborator named by ``settings.storage_backend``."""
    if settings.storage_backend == "memory":
        from local_storage import MemoryStorage
        return MemoryStorage()
    if settings.storage_backend == "sqlite":
        from habits_repo import SQLStorage, make_engine
        return SQLStorage(make_engine(settings.database_url))
    from local_storage import LocalFileStorage
    return LocalFileStorage(settings.data_dir)
