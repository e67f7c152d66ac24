"""
Centralized configuration for the Cardy game server.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file (if exists)
3. Default values

Usage:
    from config import config
    print(config.PORT)
    print(config.STORE_BACKEND)
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from constants import GAME_CODE_LENGTH

env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    if val in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


@dataclass
class ServerConfig:
    """Server configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Game storage: "memory" or "redis"
    STORE_BACKEND: str = "memory"
    REDIS_URL: str = "redis://localhost:6379/0"
    GAME_TTL_HOURS: int = 72

    # Save attempts per action before a version conflict is reported
    SAVE_RETRY_ATTEMPTS: int = 3

    # Game settings
    DEFAULT_CARDS_TO_DEAL: int = 7
    GAME_CODE_LENGTH: int = GAME_CODE_LENGTH

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        return cls(
            HOST=get_env("HOST", "0.0.0.0"),
            PORT=get_env_int("PORT", 8000),
            DEBUG=get_env_bool("DEBUG", False),
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            STORE_BACKEND=get_env("STORE_BACKEND", "memory").lower(),
            REDIS_URL=get_env("REDIS_URL", "redis://localhost:6379/0"),
            GAME_TTL_HOURS=get_env_int("GAME_TTL_HOURS", 72),
            SAVE_RETRY_ATTEMPTS=max(1, get_env_int("SAVE_RETRY_ATTEMPTS", 3)),
            DEFAULT_CARDS_TO_DEAL=get_env_int("DEFAULT_CARDS_TO_DEAL", 7),
        )


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
