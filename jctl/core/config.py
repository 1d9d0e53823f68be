"""
Core configuration utilities for jctl
Handles YAML loading and the ~/.jctl/ home layout
"""

from pathlib import Path
from typing import Dict, Any
import yaml
from loguru import logger
from .exceptions import ConfigError


class PathConfig:
    """Centralized path configuration for jctl"""

    @staticmethod
    def get_jctl_home() -> Path:
        """Get jctl home directory: ~/.jctl/"""
        return Path.home() / ".jctl"

    @staticmethod
    def get_connections_file() -> Path:
        """Get connection profiles file: ~/.jctl/connections.json"""
        return PathConfig.get_jctl_home() / "connections.json"

    @staticmethod
    def ensure_jctl_dirs() -> None:
        """Ensure the jctl home directory exists"""
        PathConfig.get_jctl_home().mkdir(parents=True, exist_ok=True)


class ConfigLoader:
    """Core utility for configuration loading and parsing"""

    def __init__(self):
        self.logger = logger

    async def load_yaml(self, config_path: str | Path) -> Dict[str, Any]:
        """Load and parse YAML configuration file"""
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        try:
            with open(config_path, 'r') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}")
        except OSError as e:
            raise ConfigError(f"Failed to load config {config_path}: {e}")

        if not isinstance(config, dict):
            raise ConfigError(f"Config file {config_path} must contain a mapping")

        self.logger.info(f"Loaded config from {config_path}")
        return config

    async def validate_config_keys(self, config: Dict[str, Any], required_keys: list[str]) -> None:
        """Validate required keys exist in config"""
        missing = [key for key in required_keys if key not in config]
        if missing:
            raise ConfigError(f"Missing required config keys: {missing}")
