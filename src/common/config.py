"""
Configuration loader for the chat gateway.

Loads settings from config.yaml. Environment variables are used ONLY for secrets
(JWT_SECRET). Never log secrets.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field

from common.models import Role


class GatewayConfig(BaseModel):
    """Configuration for the WebSocket gateway."""

    host: str = Field(default="127.0.0.1", description="Host to bind to")
    port: int = Field(default=8000, description="Port to bind to")
    max_connections: int = Field(default=1000, description="Maximum concurrent connections")
    connection_timeout: float = Field(
        default=300.0, description="Seconds without an inbound frame before a socket is closed"
    )


class ChatConfig(BaseModel):
    """Configuration for rooms, messages, typing and presence."""

    typing_timeout: float = Field(
        default=8.0, description="Seconds before an unrefreshed typing indicator is cleared"
    )
    presence_debounce: float = Field(
        default=10.0, description="Seconds to wait before declaring a disconnected user offline"
    )
    max_message_length: int = Field(default=4000, description="Maximum message content length")
    history_page_size: int = Field(default=50, description="Default history page size")
    history_max_page_size: int = Field(default=100, description="Maximum history page size")


class AuthConfig(BaseModel):
    """Configuration for access token verification. The secret lives in JWT_SECRET."""

    algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_ttl: int = Field(default=900, description="Access token lifetime in seconds")


class PermissionsConfig(BaseModel):
    """Static room permission data."""

    batch_members: Dict[str, List[str]] = Field(
        default_factory=dict, description="Batch id -> user ids allowed in the batch room"
    )
    account_roles: Dict[str, Role] = Field(
        default_factory=dict,
        description="Account id -> role, for direct-room checks on accounts not yet connected",
    )


class Config(BaseModel):
    """Main configuration object."""

    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    permissions: PermissionsConfig = Field(default_factory=PermissionsConfig)
    log_level: str = Field(default="INFO", description="Logging level")
    enable_pretty_print: bool = Field(
        default=False, description="Enable custom pretty print for debugging"
    )
    enable_jq_json_formatting: bool = Field(
        default=False, description="Enable jq-style JSON formatting for logs"
    )
    save_to_file: bool = Field(default=False, description="Save logs to file")
    log_file_path: str = Field(default="server.log", description="Log file path (relative to root)")
    max_log_file_size: int = Field(
        default=10485760, description="Max log file size in bytes (10MB)"
    )
    backup_count: int = Field(default=5, description="Number of backup log files to keep")


_LOGGING_KEYS = (
    "enable_pretty_print",
    "enable_jq_json_formatting",
    "save_to_file",
    "log_file_path",
    "max_log_file_size",
    "backup_count",
)


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from YAML file.

    Environment variables are used ONLY for secrets, not configuration.

    Args:
        config_path: Path to config.yaml file. Defaults to ./config.yaml

    Returns:
        Loaded configuration object
    """
    if config_path is None:
        config_path = Path("config.yaml")

    config_data: Dict[str, Any] = {}

    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}

    # Flatten the nested logging section onto the top-level fields
    if "logging" in config_data:
        logging_config = config_data.pop("logging") or {}
        if "level" in logging_config:
            config_data["log_level"] = logging_config["level"]
        for key in _LOGGING_KEYS:
            if key in logging_config:
                config_data[key] = logging_config[key]

    return Config(**config_data)
