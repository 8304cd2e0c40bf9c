"""Tests for server settings and local ship config files."""

import logging

import pytest

from urbit_mcp.config import (
    ServerConfig,
    create_new_ship_config_file,
    load_ship_config,
    setup_logging,
)
from urbit_mcp.models import APIConfiguration, ConfigError


def test_api_configuration_strips_trailing_slash():
    config = APIConfiguration(ship_url="http://localhost:8080/", ship_code="code")
    assert config.ship_url == "http://localhost:8080"


def test_server_config_from_environment(monkeypatch):
    monkeypatch.setenv("URBIT_SHIP_URL", "http://localhost:8081/")
    monkeypatch.setenv("URBIT_SHIP_CODE", "lidlut-tabwed-pillex-ridrup")
    monkeypatch.setenv("URBIT_POLL_INTERVAL", "2")

    api = ServerConfig().get_api_config()
    assert api.ship_url == "http://localhost:8081"
    assert api.ship_code.get_secret_value() == "lidlut-tabwed-pillex-ridrup"
    assert api.poll_interval == 2.0
    assert api.timeout == 30.0


def test_create_new_ship_config_file_only_once(tmp_path):
    path = tmp_path / "ship_config.yaml"
    assert create_new_ship_config_file(path)
    assert not create_new_ship_config_file(path)

    config = load_ship_config(path)
    assert config.ship_url == "http://0.0.0.0:8080"
    assert config.ship_code.get_secret_value() == "lidlut-tabwed-pillex-ridrup"


def test_existing_file_is_not_overwritten(tmp_path):
    path = tmp_path / "ship_config.yaml"
    path.write_text('ship_ip: "10.0.0.2"\nship_port: 80\nship_code: "sampel"\n')
    assert not create_new_ship_config_file(path)
    assert load_ship_config(path).ship_url == "http://10.0.0.2:80"


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_ship_config(tmp_path / "absent.yaml")


def test_missing_key(tmp_path):
    path = tmp_path / "ship_config.yaml"
    path.write_text('ship_ip: "0.0.0.0"\nship_port: "8080"\n')
    with pytest.raises(ConfigError) as excinfo:
        load_ship_config(path)
    assert "ship_code" in excinfo.value.message


def test_empty_file(tmp_path):
    path = tmp_path / "ship_config.yaml"
    path.write_text("")
    with pytest.raises(ConfigError):
        load_ship_config(path)


def test_setup_logging_adds_one_stderr_handler():
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        setup_logging("debug")
        setup_logging("debug")
        added = [h for h in root.handlers if h not in before]
        assert len(added) <= 1
        assert root.level == logging.DEBUG
    finally:
        for handler in root.handlers[:]:
            if handler not in before:
                root.removeHandler(handler)
        root.setLevel(level)
