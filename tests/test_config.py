"""Tests for environment-driven configuration."""

from pathlib import Path

from magic_notes.config import AppConfig


class TestAppConfig:

    def test_defaults(self, monkeypatch):
        for name in ("GEMINI_API_KEY", "API_KEY", "INLINE_MAX_MB", "MAGIC_NOTES_DATA_DIR"):
            monkeypatch.delenv(name, raising=False)

        config = AppConfig.load_from_env()

        assert config.gemini.api_key is None
        assert config.gemini.fast_model == "gemini-2.5-flash"
        assert config.gemini.deep_model == "gemini-2.5-pro"
        assert config.upload.inline_max_mb == 20.0
        assert config.storage_path == Path("magic_notes_data") / "storage.json"

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("GEMINI_API_KEY", "secret")
        monkeypatch.setenv("INLINE_MAX_MB", "5")
        monkeypatch.setenv("AUDIO_DEVICE_ID", "2")
        monkeypatch.setenv("MAGIC_NOTES_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("SERVER_PORT", "9000")
        monkeypatch.setenv("DEBUG", "true")

        config = AppConfig.load_from_env()

        assert config.gemini.api_key == "secret"
        assert config.upload.inline_max_mb == 5.0
        assert config.live.device_id == 2
        assert config.storage_path == tmp_path / "storage.json"
        assert config.server.port == 9000
        assert config.server.debug is True

    def test_api_key_fallback(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.setenv("API_KEY", "fallback")

        assert AppConfig.load_from_env().gemini.api_key == "fallback"

    def test_ensure_directories(self, tmp_path):
        config = AppConfig()
        config.storage.data_dir = tmp_path / "data"

        config.ensure_directories()

        assert config.recordings_dir.is_dir()
