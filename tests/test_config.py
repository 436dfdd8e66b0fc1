"""Tests for runtime settings."""

from pathlib import Path

import pytest

from kotoba.config import DATA_DIR, Settings
from kotoba.errors import ValidationError


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        """Paths default into the data directory."""
        settings = Settings()
        assert settings.database_path == DATA_DIR / "dict.db"
        assert settings.index_path == DATA_DIR / "dict.idx"
        assert settings.query_timeout == 5.0
        assert settings.cache_capacity == 100

    def test_data_dir(self, tmp_path):
        """Database and index follow a custom data directory."""
        settings = Settings(data_dir=tmp_path)
        assert settings.database_path == tmp_path / "dict.db"

    def test_pool_size_clamped(self):
        """The pool size stays within the worker bounds."""
        assert Settings(min_workers=1, max_workers=1).pool_size == 1
        assert 2 <= Settings(min_workers=2, max_workers=3).pool_size <= 3

    @pytest.mark.parametrize("kwargs", [
        {"min_workers": 0},
        {"min_workers": 4, "max_workers": 2},
        {"query_timeout": 0},
        {"cache_capacity": 0},
        {"cache_min_ttl": -1},
    ])
    def test_invalid(self, kwargs):
        """Out of range values are rejected."""
        with pytest.raises(ValidationError):
            Settings(**kwargs)

    def test_from_env(self, monkeypatch, tmp_path):
        """KOTOBA_* variables override defaults."""
        monkeypatch.setenv("KOTOBA_DATABASE", str(tmp_path / "other.db"))
        monkeypatch.setenv("KOTOBA_QUERY_TIMEOUT", "2.5")
        monkeypatch.setenv("KOTOBA_CACHE_CAPACITY", "10")
        settings = Settings.from_env()
        assert settings.database_path == tmp_path / "other.db"
        assert settings.query_timeout == 2.5
        assert settings.cache_capacity == 10

    def test_from_env_overrides(self, monkeypatch):
        """Explicit overrides win over the environment."""
        monkeypatch.setenv("KOTOBA_DATABASE", "/env/dict.db")
        settings = Settings.from_env(database_path=Path("/cli/dict.db"))
        assert settings.database_path == Path("/cli/dict.db")

    def test_from_env_invalid(self, monkeypatch):
        """Malformed numbers raise ValidationError."""
        monkeypatch.setenv("KOTOBA_MAX_WORKERS", "many")
        with pytest.raises(ValidationError):
            Settings.from_env()
