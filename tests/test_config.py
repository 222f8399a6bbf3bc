"""
Tests for configuration system.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from common.config import Config, PermissionsConfig, load_config
from common.models import Role


def test_config_creation():
    """Test basic Config creation."""
    config = Config()

    assert config.gateway is not None
    assert config.chat is not None
    assert config.auth is not None
    assert hasattr(config.gateway, "connection_timeout")
    assert hasattr(config.chat, "typing_timeout")


def test_config_gateway_settings():
    """Test gateway configuration settings."""
    config = Config()

    assert config.gateway.connection_timeout > 0
    assert config.gateway.max_connections > 0
    assert isinstance(config.gateway.connection_timeout, (int, float))


def test_config_chat_defaults_are_reasonable():
    """Typing timeout and presence debounce default into their recommended windows."""
    config = Config()

    assert 5 <= config.chat.typing_timeout <= 10
    assert 5 <= config.chat.presence_debounce <= 15
    assert 1 <= config.chat.history_page_size <= config.chat.history_max_page_size
    assert config.chat.history_max_page_size == 100


def test_config_yaml_file_exists():
    """Test that config.yaml file exists."""
    config_path = Path("config.yaml")
    assert config_path.exists(), "config.yaml file should exist in the project root"


def test_load_config_from_repo_yaml():
    """The shipped config.yaml loads cleanly."""
    config = load_config(Path("config.yaml"))

    assert config.gateway.port == 8000
    assert config.chat.typing_timeout == 8
    assert config.log_level == "INFO"


def test_load_config_flattens_logging_section(tmp_path: Path):
    """Nested logging keys land on the top-level config fields."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "chat:\n"
        "  presence_debounce: 12\n"
        "permissions:\n"
        "  batch_members:\n"
        "    '42': [u1, u2]\n"
        "logging:\n"
        "  level: DEBUG\n"
        "  enable_pretty_print: true\n"
        "  backup_count: 2\n",
        encoding="utf-8",
    )

    config = load_config(config_file)

    assert config.chat.presence_debounce == 12
    assert config.permissions.batch_members == {"42": ["u1", "u2"]}
    assert config.log_level == "DEBUG"
    assert config.enable_pretty_print is True
    assert config.backup_count == 2


def test_load_config_missing_file_uses_defaults(tmp_path: Path):
    """A missing file yields the defaults."""
    config = load_config(tmp_path / "nope.yaml")

    assert config == Config()


def test_account_roles_are_validated():
    permissions = PermissionsConfig(account_roles={"coach1": "COACH"})
    assert permissions.account_roles == {"coach1": Role.COACH}

    with pytest.raises(ValidationError):
        PermissionsConfig(account_roles={"u1": "PARENT"})
