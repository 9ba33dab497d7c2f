"""Configuration loader for niri-sticky.

Loads daemon settings from an optional JSON file and applies environment
overrides on top.
"""

import json
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigLoadError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path.home() / ".config" / "niri-sticky" / "config.json"
DEFAULT_IPC_SOCKET = Path.home() / ".cache" / "niri-sticky" / "ipc.sock"

# Environment variable -> config field
ENV_OVERRIDES = {
    "NIRI_SOCKET": "niri_socket",
    "NIRI_STICKY_IPC_SOCKET": "ipc_socket_path",
    "NIRI_STICKY_STAGE_WORKSPACE": "stage_workspace",
    "NIRI_STICKY_LOG_LEVEL": "log_level",
}


class DaemonConfig(BaseModel):
    """Runtime settings for the daemon and CLI."""

    niri_socket: Optional[str] = Field(None, description="Path of niri's IPC socket")
    ipc_socket_path: Path = Field(DEFAULT_IPC_SOCKET, description="Daemon request socket")
    stage_workspace: str = Field("stage", min_length=1, description="Named staging workspace")
    host_timeout: float = Field(2.0, gt=0, description="Seconds allowed per niri round trip")
    query_transport: Literal["msg", "socket"] = Field(
        "msg", description="Run 'niri msg' or talk to the socket for queries"
    )
    niri_command: str = Field("niri", min_length=1, description="niri executable")
    log_level: str = Field("INFO", description="Logging level name")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a known logging level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("ipc_socket_path")
    @classmethod
    def expand_socket_path(cls, v: Path) -> Path:
        return v.expanduser()


def load_config(config_file: Optional[Path] = None) -> DaemonConfig:
    """Load daemon configuration.

    Args:
        config_file: JSON file to read (defaults to ~/.config/niri-sticky/config.json)

    Returns:
        Validated DaemonConfig

    Raises:
        ConfigLoadError: If the file is unreadable or a value is invalid
    """
    path = config_file or DEFAULT_CONFIG_FILE
    data = {}

    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigLoadError(str(path), str(e))

        if not isinstance(data, dict):
            raise ConfigLoadError(str(path), "top-level value must be an object")
        logger.debug(f"Loaded configuration from {path}")
    elif config_file is not None:
        raise ConfigLoadError(str(path), "file not found")

    for env_var, field in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            data[field] = value

    try:
        return DaemonConfig(**data)
    except ValidationError as e:
        raise ConfigLoadError(str(path), str(e))
