"""
Configuration for the anchor manager, its store adapters and the sync server.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Application settings, read from the environment."""
    redis_host: str
    redis_port: int
    redis_password: Optional[str]
    anchor_channel: str
    data_file: str
    api_token: str
    sync_url: str
    sync_timeout: float
    host: str
    port: int
    log_level: str
    preserve_identity: bool


def load_settings() -> Settings:
    """Load settings from environment variables with defaults."""
    return Settings(redis_host=os.getenv("REDIS_HOST", "localhost"),
                    redis_port=int(os.getenv("REDIS_PORT", "6379")),
                    redis_password=os.getenv("REDIS_PASSWORD") or None,
                    anchor_channel=os.getenv("ANCHOR_CHANNEL", "anchor_updates"),
                    data_file=os.getenv("ANCHOR_DATA_FILE", "./anchors.json"),
                    api_token=os.getenv("ANCHOR_API_TOKEN", "my-secret-token"),
                    sync_url=os.getenv("ANCHOR_SYNC_URL", "http://localhost:4000"),
                    sync_timeout=float(os.getenv("ANCHOR_SYNC_TIMEOUT", "10.0")),
                    host=os.getenv("HOST", "0.0.0.0"),
                    port=int(os.getenv("PORT", "4000")),
                    log_level=os.getenv("LOG_LEVEL", "INFO"),
                    preserve_identity=_env_flag("PRESERVE_ANCHOR_IDENTITY", True))


settings = load_settings()
