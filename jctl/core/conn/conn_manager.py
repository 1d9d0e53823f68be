"""
Connection Profile Manager
JSON-based connection profile management
"""

import json
import tempfile
import time
from pathlib import Path
from typing import Dict, List, Optional
from loguru import logger

from ..config import PathConfig
from ..exceptions import ConfigError
from .conn_models import ConnectionProfile


class ConnectionManager:
    """
    Manages connection profiles stored in ~/.jctl/connections.json
    """

    def __init__(self, connections_file: Optional[Path] = None):
        """Initialize connection manager"""
        if connections_file is None:
            PathConfig.ensure_jctl_dirs()
            connections_file = PathConfig.get_connections_file()

        self.connections_file = connections_file

        # Initialize empty connections file if doesn't exist
        if not self.connections_file.exists():
            self._write_connections({})

    def _read_connections(self) -> Dict[str, dict]:
        """Safely read connections file"""
        try:
            if not self.connections_file.exists():
                return {}

            content = self.connections_file.read_text(encoding='utf-8')
            return json.loads(content) if content.strip() else {}

        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to read connections file: {e}")
            return {}

    def _write_connections(self, data: Dict[str, dict], retries: int = 3) -> None:
        """Write connections file through a temp file and rename"""
        for attempt in range(retries):
            try:
                with tempfile.NamedTemporaryFile(
                    mode='w',
                    dir=self.connections_file.parent,
                    delete=False,
                    suffix='.tmp',
                    encoding='utf-8'
                ) as temp_file:
                    json.dump(data, temp_file, indent=2, ensure_ascii=False)
                    temp_file.flush()

                Path(temp_file.name).replace(self.connections_file)
                return

            except OSError as e:
                if attempt == retries - 1:
                    logger.error(f"Failed to write connections file after {retries} attempts: {e}")
                    raise ConfigError(f"Could not save connections: {e}")
                logger.debug(f"Connections write attempt {attempt + 1} failed, retrying: {e}")
                time.sleep(0.1)

    def save_profile(self, profile: ConnectionProfile) -> None:
        """Save a connection profile"""
        if not profile.name:
            raise ConfigError("Connection profile name cannot be empty")

        data = self._read_connections()
        data[profile.name] = profile.to_dict()
        self._write_connections(data)

        logger.debug(f"Saved connection profile: {profile.name}")

    def get_profile(self, name: str) -> Optional[ConnectionProfile]:
        """Get a connection profile by name"""
        profile_dict = self._read_connections().get(name)

        if profile_dict:
            try:
                return ConnectionProfile.from_dict(profile_dict)
            except (TypeError, ValueError) as e:
                logger.warning(f"Invalid connection profile for {name}: {e}")
                return None

        return None

    def list_profiles(self) -> List[ConnectionProfile]:
        """List all valid connection profiles"""
        profiles = []

        for name, profile_dict in self._read_connections().items():
            try:
                profiles.append(ConnectionProfile.from_dict(profile_dict))
            except (TypeError, ValueError) as e:
                logger.warning(f"Invalid connection profile for {name}: {e}")

        return profiles

    def remove_profile(self, name: str) -> bool:
        """Remove a connection profile"""
        data = self._read_connections()

        if name in data:
            del data[name]
            self._write_connections(data)
            logger.debug(f"Removed connection profile: {name}")
            return True

        return False

    def profile_exists(self, name: str) -> bool:
        """Check if a profile exists"""
        return name in self._read_connections()

    def validate_profile(self, profile: ConnectionProfile) -> List[str]:
        """
        Validate a connection profile and return list of issues
        Returns empty list if profile is valid
        """
        issues = []

        if not profile.name:
            issues.append("Profile name is required")

        if not profile.platform_url.startswith(('http://', 'https://')):
            issues.append("Platform URL must start with http:// or https://")

        if not profile.realm:
            issues.append("Realm is required")

        return issues
