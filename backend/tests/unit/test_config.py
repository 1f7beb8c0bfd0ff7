"""Unit tests for environment-driven settings."""

from app.config import Settings

ENV_VARS = [
    "RECENT_CACHE_MAX_ENTRIES",
    "RECENT_CACHE_MOST_VIEWED_LIMIT",
    "RECENT_CACHE_KEY",
    "PREFERENCES_KEY",
    "STORAGE_BACKEND",
    "STORAGE_FILE_PATH",
    "REDIS_URL",
    "LOG_LEVEL",
]


class TestSettings:
    def test_defaults(self, monkeypatch) -> None:
        for name in ENV_VARS:
            monkeypatch.delenv(name, raising=False)
        settings = Settings.from_env()
        assert settings.max_entries == 20
        assert settings.most_viewed_limit == 10
        assert settings.cache_key == "recent_toilet_cache"
        assert settings.preferences_key == "user_preferences"
        assert settings.storage_backend == "memory"
        assert settings.log_level == "INFO"

    def test_overrides(self, monkeypatch) -> None:
        monkeypatch.setenv("RECENT_CACHE_MAX_ENTRIES", "5")
        monkeypatch.setenv("RECENT_CACHE_MOST_VIEWED_LIMIT", "3")
        monkeypatch.setenv("RECENT_CACHE_KEY", "recent_v2")
        monkeypatch.setenv("PREFERENCES_KEY", "prefs_v2")
        monkeypatch.setenv("STORAGE_BACKEND", "File")
        monkeypatch.setenv("STORAGE_FILE_PATH", "/tmp/device.json")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        settings = Settings.from_env()
        assert settings.max_entries == 5
        assert settings.most_viewed_limit == 3
        assert settings.cache_key == "recent_v2"
        assert settings.preferences_key == "prefs_v2"
        assert settings.storage_backend == "file"
        assert settings.storage_file_path == "/tmp/device.json"
        assert settings.log_level == "DEBUG"

    def test_invalid_numbers_fall_back(self, monkeypatch) -> None:
        monkeypatch.setenv("RECENT_CACHE_MAX_ENTRIES", "lots")
        monkeypatch.setenv("RECENT_CACHE_MOST_VIEWED_LIMIT", "0")
        settings = Settings.from_env()
        assert settings.max_entries == 20
        assert settings.most_viewed_limit == 10

    def test_unknown_backend_falls_back(self, monkeypatch) -> None:
        monkeypatch.setenv("STORAGE_BACKEND", "sqlite")
        assert Settings.from_env().storage_backend == "memory"
