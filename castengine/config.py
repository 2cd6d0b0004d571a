"""
Configuration management for CastEngine.

Handles loading, validation, and access to application configuration.
"""

import os
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

# Global configuration instance
_config: Optional["CastEngineConfig"] = None


class ServerConfig(BaseModel):
    """HTTP server configuration."""
    host: str = "0.0.0.0"
    port: int = 4000
    debug: bool = False
    api_prefix: str = "/api"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class DatabaseConfig(BaseModel):
    """Database configuration."""
    url: str = "sqlite:///./castengine.db"
    echo: bool = False


class EngineConfig(BaseModel):
    """Session controller and dispatcher settings (seconds)."""
    tick_interval_seconds: float = 1.0
    player_start_timeout: float = 30.0
    player_switch_timeout: float = 10.0
    player_stop_timeout: float = 10.0

    @field_validator(
        "tick_interval_seconds",
        "player_start_timeout",
        "player_switch_timeout",
        "player_stop_timeout",
    )
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than 0")
        return value


class PlayerConfig(BaseModel):
    """Player backend configuration."""
    backend: Literal["ffmpeg", "null"] = "ffmpeg"
    ffmpeg_path: str = "ffmpeg"
    rtmp_url: str = "rtmp://a.rtmp.youtube.com/live2"
    realtime: bool = True  # -re, read input at native frame rate
    extra_args: list[str] = Field(default_factory=list)


class LibraryVideoConfig(BaseModel):
    """A video reference seeded into the library at startup."""
    id: str
    name: str
    url: str


class LibraryConfig(BaseModel):
    """Video library configuration."""
    videos: list[LibraryVideoConfig] = Field(default_factory=list)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    file: str = "logs/castengine.log"
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    to_console: bool = True
    to_file: bool = True


class CastEngineConfig(BaseModel):
    """Main CastEngine configuration."""
    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    player: PlayerConfig = Field(default_factory=PlayerConfig)
    library: LibraryConfig = Field(default_factory=LibraryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Optional[str] = None) -> CastEngineConfig:
    """
    Load configuration from file.

    Args:
        config_path: Path to config file. Defaults to config.yaml in project root.

    Returns:
        Loaded and validated configuration.
    """
    global _config

    if config_path is None:
        # Look for config.yaml in current directory or project root
        possible_paths = [
            Path("config.yaml"),
            Path(__file__).parent.parent / "config.yaml",
        ]
        for path in possible_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data: dict[str, Any] = {}

    if config_path and Path(config_path).exists():
        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}

    # Apply environment variable overrides
    env_overrides = _get_env_overrides()
    _deep_merge(config_data, env_overrides)

    _config = CastEngineConfig(**config_data)
    return _config


def get_config() -> CastEngineConfig:
    """
    Get the current configuration.

    Returns:
        Current configuration (loads default if not yet loaded).
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> CastEngineConfig:
    """
    Reload configuration from disk.

    Returns:
        Freshly loaded configuration.
    """
    global _config
    _config = None
    return load_config()


def _get_env_overrides() -> dict[str, Any]:
    """Get configuration overrides from environment variables."""
    overrides: dict[str, Any] = {}

    env_map = {
        "CASTENGINE_HOST": ("server", "host"),
        "CASTENGINE_PORT": ("server", "port"),
        "CASTENGINE_DEBUG": ("server", "debug"),
        "CASTENGINE_DATABASE_URL": ("database", "url"),
        "CASTENGINE_FFMPEG_PATH": ("player", "ffmpeg_path"),
        "CASTENGINE_RTMP_URL": ("player", "rtmp_url"),
        "CASTENGINE_PLAYER_BACKEND": ("player", "backend"),
        "CASTENGINE_TICK_INTERVAL": ("engine", "tick_interval_seconds"),
        "CASTENGINE_LOG_LEVEL": ("logging", "level"),
    }

    for env_var, path in env_map.items():
        value = os.environ.get(env_var)
        if value is not None:
            _set_nested(overrides, path, _parse_env_value(value))

    return overrides


def _parse_env_value(value: str) -> Any:
    """Parse environment variable value to appropriate type."""
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value


def _set_nested(d: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    """Set a nested dictionary value from a path tuple."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> None:
    """Deep merge override into base dictionary."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
