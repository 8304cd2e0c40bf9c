"""Configuration for the Urbit MCP server and local ship config files."""

import logging
import sys
from pathlib import Path

import yaml
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import APIConfiguration, ConfigError

DEFAULT_SHIP_CONFIG_PATH = "ship_config.yaml"

BAREBONES_SHIP_CONFIG_YAML = """\
# IP Address of your Urbit ship (default is local)
ship_ip: "0.0.0.0"
# Port that the ship is on
ship_port: "8080"
# The `+code` of your ship
ship_code: "lidlut-tabwed-pillex-ridrup"
"""

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ServerConfig(BaseSettings):
    """Server settings, read from ``URBIT_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="URBIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ship_url: str = Field(default="http://0.0.0.0:8080", description="Base URL of the ship")
    ship_code: SecretStr = Field(..., description="The ship's +code")
    timeout: float = Field(default=30.0, gt=0)
    poll_interval: float = Field(default=0.5, gt=0)
    log_level: str = Field(default="INFO")

    def get_api_config(self) -> APIConfiguration:
        """Get API configuration for the client."""
        return APIConfiguration(
            ship_url=self.ship_url,
            ship_code=self.ship_code,
            timeout=self.timeout,
            poll_interval=self.poll_interval,
        )


def setup_logging(level: str = "INFO") -> None:
    """Send ``logging`` output to stderr (stdout belongs to the MCP stdio transport)."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    has_console = any(
        isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
        for h in root.handlers
    )
    if not has_console:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)


def create_new_ship_config_file(path: str | Path = DEFAULT_SHIP_CONFIG_PATH) -> bool:
    """Write a barebones ship config; returns False if the file already exists."""
    file_path = Path(path)
    if file_path.exists():
        return False
    file_path.write_text(BAREBONES_SHIP_CONFIG_YAML, encoding="utf-8")
    return True


def load_ship_config(path: str | Path = DEFAULT_SHIP_CONFIG_PATH) -> APIConfiguration:
    """Build an ``APIConfiguration`` from a local ship config file.

    The file needs ``ship_ip``, ``ship_port`` and ``ship_code``; the URL is
    ``http://<ship_ip>:<ship_port>``.
    """
    file_path = Path(path)
    try:
        with open(file_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Ship config not found: {file_path}") from None
    except yaml.YAMLError as err:
        raise ConfigError(f"Ship config {file_path} is not valid YAML: {err}") from err

    if not isinstance(data, dict):
        raise ConfigError(f"Ship config {file_path} is empty or not a mapping")

    missing = [key for key in ("ship_ip", "ship_port", "ship_code") if data.get(key) in (None, "")]
    if missing:
        raise ConfigError(f"Ship config {file_path} is missing: {', '.join(missing)}")

    return APIConfiguration(
        ship_url=f"http://{data['ship_ip']}:{data['ship_port']}",
        ship_code=str(data["ship_code"]),
    )
