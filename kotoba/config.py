"""Runtime settings for the lookup engine."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from kotoba.errors import ValidationError

DATA_DIR = Path(__file__).parent / "data"

DEFAULT_DATABASE_NAME = "dict.db"
DEFAULT_INDEX_NAME = "dict.idx"
DEFAULT_RULES_PATH = DATA_DIR / "deinflect.json"

DEFAULT_MIN_WORKERS = 1
DEFAULT_MAX_WORKERS = 8
DEFAULT_QUERY_TIMEOUT = 5.0

MAX_SEARCH_CACHE_ENTRIES = 100
MIN_SEARCH_ENTRY_TTL = 120.0


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{name} must be an integer, got {value!r}")


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValidationError(f"{name} must be a number, got {value!r}")


def _env_path(name: str) -> Optional[Path]:
    value = os.environ.get(name)
    return Path(value) if value else None


@dataclass
class Settings:
    data_dir: Path = DATA_DIR
    database_path: Optional[Path] = None
    index_path: Optional[Path] = None
    rules_path: Path = DEFAULT_RULES_PATH

    min_workers: int = DEFAULT_MIN_WORKERS
    max_workers: int = DEFAULT_MAX_WORKERS
    query_timeout: float = DEFAULT_QUERY_TIMEOUT

    cache_capacity: int = MAX_SEARCH_CACHE_ENTRIES
    cache_min_ttl: float = MIN_SEARCH_ENTRY_TTL

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        if self.database_path is None:
            self.database_path = self.data_dir / DEFAULT_DATABASE_NAME
        if self.index_path is None:
            self.index_path = self.data_dir / DEFAULT_INDEX_NAME
        self.database_path = Path(self.database_path)
        self.index_path = Path(self.index_path)
        self.rules_path = Path(self.rules_path)
        self.validate()

    def validate(self) -> None:
        if self.min_workers < 1:
            raise ValidationError("min_workers must be >= 1")
        if self.max_workers < self.min_workers:
            raise ValidationError("max_workers must be >= min_workers")
        if self.query_timeout <= 0:
            raise ValidationError("query_timeout must be > 0")
        if self.cache_capacity < 1:
            raise ValidationError("cache_capacity must be >= 1")
        if self.cache_min_ttl < 0:
            raise ValidationError("cache_min_ttl must be >= 0")

    @property
    def pool_size(self) -> int:
        """CPU count clamped to [min_workers, max_workers]."""
        cpus = os.cpu_count() or 1
        return max(self.min_workers, min(self.max_workers, cpus))

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """Build settings from KOTOBA_* environment variables."""
        values = dict(
            data_dir=_env_path("KOTOBA_DATA_DIR") or DATA_DIR,
            database_path=_env_path("KOTOBA_DATABASE"),
            index_path=_env_path("KOTOBA_INDEX"),
            rules_path=_env_path("KOTOBA_RULES") or DEFAULT_RULES_PATH,
            min_workers=_env_int("KOTOBA_MIN_WORKERS", DEFAULT_MIN_WORKERS),
            max_workers=_env_int("KOTOBA_MAX_WORKERS", DEFAULT_MAX_WORKERS),
            query_timeout=_env_float("KOTOBA_QUERY_TIMEOUT", DEFAULT_QUERY_TIMEOUT),
            cache_capacity=_env_int("KOTOBA_CACHE_CAPACITY", MAX_SEARCH_CACHE_ENTRIES),
            cache_min_ttl=_env_float("KOTOBA_CACHE_MIN_TTL", MIN_SEARCH_ENTRY_TTL),
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
