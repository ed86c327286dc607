"""Configuration management for Magic Notes application."""

import os
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field


class GeminiConfig(BaseModel):
    """Remote analysis model configuration."""
    api_key: Optional[str] = Field(default=None, description="Gemini API key")
    base_url: str = Field(default="https://generativelanguage.googleapis.com", description="Gemini REST base URL")
    api_version: str = Field(default="v1beta", description="Gemini REST API version")
    fast_model: str = Field(default="gemini-2.5-flash", description="Model used for the fast analysis profile")
    deep_model: str = Field(default="gemini-2.5-pro", description="Model used for the deep analysis profile")
    deep_thinking_budget: int = Field(default=32768, description="Extended reasoning budget for deep analysis")
    timeout_seconds: int = Field(default=600, description="Timeout for analysis requests")
    connectivity_timeout: float = Field(default=3.0, description="Timeout for the connectivity check")


class UploadConfig(BaseModel):
    """Large file upload configuration."""
    inline_max_mb: float = Field(default=20.0, description="Largest file sent inline; bigger files go through the Files API")
    poll_interval: float = Field(default=2.0, description="Seconds between activation status checks")
    max_poll_attempts: int = Field(default=120, description="Status checks before giving up on activation")


class LiveConfig(BaseModel):
    """Live capture configuration."""
    sample_rate: int = Field(default=16000, description="Audio sample rate in Hz")
    channels: int = Field(default=1, description="Number of audio channels (mono)")
    chunk_size: int = Field(default=1024, description="Audio buffer chunk size")
    device_id: Optional[int] = Field(default=None, description="Microphone device ID (default input if None)")
    language: str = Field(default="pt", description="Language code for live speech recognition")
    whisper_model: str = Field(default="base", description="Whisper model size for live speech recognition")
    whisper_device: str = Field(default="auto", description="Device for inference (auto, cpu, cuda)")
    window_seconds: float = Field(default=5.0, description="Length of each live recognition window")
    silence_rms: float = Field(default=0.01, description="RMS level below which a window counts as silence")


class StorageConfig(BaseModel):
    """Local persistence configuration."""
    data_dir: Path = Field(default=Path("magic_notes_data"), description="Directory for history, preferences and recordings")
    storage_file: str = Field(default="storage.json", description="Key-value store file name")
    history_key: str = Field(default="analysisHistory", description="Slot holding the analysis history")


class ExportConfig(BaseModel):
    """Export configuration."""
    filename_prefix: str = Field(default="notas-magicas", description="Prefix for exported file names")


class ServerConfig(BaseModel):
    """FastAPI server configuration."""
    host: str = Field(default="127.0.0.1", description="Server host address")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")
    cors_origins: list[str] = Field(default=["*"], description="CORS allowed origins")


class AppConfig(BaseModel):
    """Main application configuration."""
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    live: LiveConfig = Field(default_factory=LiveConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @classmethod
    def load_from_env(cls) -> "AppConfig":
        """Load configuration from environment variables."""
        config = cls()

        # Gemini settings
        api_key = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
        if api_key:
            config.gemini.api_key = api_key
        if os.getenv("GEMINI_BASE_URL"):
            config.gemini.base_url = os.getenv("GEMINI_BASE_URL")
        if os.getenv("GEMINI_FAST_MODEL"):
            config.gemini.fast_model = os.getenv("GEMINI_FAST_MODEL")
        if os.getenv("GEMINI_DEEP_MODEL"):
            config.gemini.deep_model = os.getenv("GEMINI_DEEP_MODEL")

        # Upload settings
        if os.getenv("INLINE_MAX_MB"):
            config.upload.inline_max_mb = float(os.getenv("INLINE_MAX_MB"))

        # Live settings
        if os.getenv("WHISPER_MODEL"):
            config.live.whisper_model = os.getenv("WHISPER_MODEL")
        if os.getenv("AUDIO_DEVICE_ID"):
            config.live.device_id = int(os.getenv("AUDIO_DEVICE_ID"))

        # Storage settings
        if os.getenv("MAGIC_NOTES_DATA_DIR"):
            config.storage.data_dir = Path(os.getenv("MAGIC_NOTES_DATA_DIR"))

        # Server settings
        if os.getenv("SERVER_HOST"):
            config.server.host = os.getenv("SERVER_HOST")
        if os.getenv("SERVER_PORT"):
            config.server.port = int(os.getenv("SERVER_PORT"))
        if os.getenv("DEBUG"):
            config.server.debug = os.getenv("DEBUG").lower() == "true"

        return config

    @property
    def storage_path(self) -> Path:
        return self.storage.data_dir / self.storage.storage_file

    @property
    def recordings_dir(self) -> Path:
        return self.storage.data_dir / "recordings"

    def ensure_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        self.storage.data_dir.mkdir(parents=True, exist_ok=True)
        self.recordings_dir.mkdir(parents=True, exist_ok=True)


# Global configuration instance
config = AppConfig.load_from_env()
