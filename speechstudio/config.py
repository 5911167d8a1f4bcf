"""Configuration module for the Voice Studio application."""
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # App settings
    APP_NAME: str = "Voice Studio"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Server settings
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Provider settings (the key never leaves the relay)
    ELEVENLABS_API_KEY: Optional[str] = None
    ELEVENLABS_BASE_URL: str = "https://api.elevenlabs.io/v1"
    DEFAULT_MODEL_ID: str = "eleven_monolingual_v1"
    REQUEST_TIMEOUT: float = 60.0

    # Client settings
    STUDIO_API_URL: str = "http://localhost:8000/api"

    # Path settings
    BASE_DIR: Path = Path(__file__).parent.parent
    STATE_DIR: Path = BASE_DIR / "state"
    EXPORTS_DIR: Path = BASE_DIR / "exports"

    # Local state
    HISTORY_LIMIT: int = 10

    # Audio settings
    SAMPLE_RATE: int = 44100
    RECORDING_CHANNELS: int = 1
    MAX_SAMPLE_SIZE_MB: int = 10


settings = Settings()
