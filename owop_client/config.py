"""
Client configuration management.

Loads configuration from client_config.yml with environment variable overrides.
Uses Pydantic for validation and type safety.
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from .constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_ORIGIN,
    DEFAULT_RECONNECT_TIME,
    DEFAULT_SERVER_URL,
    DEFAULT_WORLD,
    MAX_CHAT_BUFFER,
    WORLD_BORDER,
)

DEFAULT_CONFIG_PATH = Path("client_config.yml")

# Environment variable -> (section, key, parser)
ENV_OVERRIDES = {
    "OWOP_SERVER_URL": ("server", "url", str),
    "OWOP_ORIGIN": ("server", "origin", str),
    "OWOP_WORLD": ("session", "world", str),
    "OWOP_RECONNECT": ("session", "reconnect", lambda value: value.lower() in ("true", "1", "yes")),
    "LOG_LEVEL": ("debug", "log_level", str),
}


class ServerConfig(BaseModel):
    """Server connection settings."""
    url: str = Field(default=DEFAULT_SERVER_URL, description="WebSocket server address")
    origin: str = Field(default=DEFAULT_ORIGIN, description="Origin header sent on connect")


class SessionConfig(BaseModel):
    """Per-session behaviour."""
    world: str = Field(default=DEFAULT_WORLD, description="World joined once the captcha clears")
    reconnect: bool = Field(default=False, description="Reconnect after the socket closes")
    reconnect_time: float = Field(default=DEFAULT_RECONNECT_TIME, description="Seconds to wait before reconnecting")
    teleport: bool = Field(default=False, description="Follow teleport requests from the server")
    unsafe: bool = Field(default=False, description="Send admin-only messages regardless of rank")
    client_id: Optional[str] = Field(default=None, description="Log prefix; the player id is used if unset")

    @field_validator("reconnect_time")
    @classmethod
    def _non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("reconnect_time must be non-negative")
        return value


class CredentialsConfig(BaseModel):
    """Credential strings forwarded to the server as-is."""
    admin_login: Optional[str] = Field(default=None, description="Sent as /adminlogin after joining")
    mod_login: Optional[str] = Field(default=None, description="Sent as /modlogin after joining")
    world_pass: Optional[str] = Field(default=None, description="Sent as /pass after joining")
    captcha_pass: Optional[str] = Field(default=None, description="Skips the captcha when the server asks")


class ProtocolConfig(BaseModel):
    """Protocol tunables."""
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, description="Chunk edge length in pixels")
    max_chat_buffer: int = Field(default=MAX_CHAT_BUFFER, description="Chat lines kept in the backlog")
    world_border: int = Field(default=WORLD_BORDER, description="Largest valid chunk coordinate")

    @field_validator("chunk_size")
    @classmethod
    def _power_of_two(cls, value: int) -> int:
        if value <= 0 or value & (value - 1):
            raise ValueError("chunk_size must be a power of two")
        return value


class DebugConfig(BaseModel):
    """Debug and development settings."""
    log_level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    log_file: Optional[Path] = Field(default=None, description="Also log to this file")


class ClientConfig(BaseModel):
    """Complete client configuration."""
    server: ServerConfig = Field(default_factory=ServerConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    protocol: ProtocolConfig = Field(default_factory=ProtocolConfig)
    debug: DebugConfig = Field(default_factory=DebugConfig)

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "ClientConfig":
        """Load configuration from YAML file, falling back to defaults."""
        path = Path(path) if path else DEFAULT_CONFIG_PATH

        data: dict = {}
        if path.exists():
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}

        data = cls._apply_env_overrides(data)

        return cls(**data)

    @staticmethod
    def _apply_env_overrides(data: dict) -> dict:
        """Overlay the ENV_OVERRIDES variables that are set onto raw config data."""
        for env_var, (section, key, parse) in ENV_OVERRIDES.items():
            raw = os.environ.get(env_var)
            if raw is None:
                continue
            data.setdefault(section, {})[key] = parse(raw)
        return data


def get_config() -> ClientConfig:
    """Get the cached configuration instance."""
    if not hasattr(get_config, "_instance"):
        get_config._instance = ClientConfig.from_yaml()
    return get_config._instance

