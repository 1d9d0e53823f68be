"""
Connection Service - Internal API for connection profile management
Follows three-layer architecture: Service Layer for business logic and cross-service coordination
"""

import asyncio
import os
from pathlib import Path
from typing import Dict, Any, Optional
from loguru import logger

from ...core.conn.conn_manager import ConnectionManager
from ...core.conn.conn_models import ConnectionProfile
from ...core.config import ConfigLoader
from ...core.exceptions import ServiceError, ConfigError
from ...core.journey.journey_models import PlatformContext


ACCESS_TOKEN_ENV = "JCTL_ACCESS_TOKEN"

# YAML config key -> profile field
CONFIG_FIELDS = {
    "platform": "platform_url",
    "realm": "realm",
    "deployment_type": "deployment_type",
    "access_token": "access_token",
    "am_version": "am_version",
    "managed_user_object": "managed_user_object",
    "description": "description",
}


class ConnectionService:
    """
    Service layer for connection profile operations

    Profile commands return plain dicts ({"success": ..., ...}) for the CLI layer;
    get_context raises, since journey commands cannot continue without a target.
    """

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        self.logger = logger
        self.connection_manager = connection_manager or ConnectionManager()
        self.config_loader = ConfigLoader()

    def create_profile(self, profile_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create new connection profile with business validation

        Args:
            profile_data: Profile fields (see ConnectionProfile)

        Returns:
            Dict with creation result
        """
        try:
            profile = ConnectionProfile.from_dict(profile_data)

            if self.connection_manager.profile_exists(profile.name):
                raise ServiceError(f"Profile '{profile.name}' already exists")

            issues = self.connection_manager.validate_profile(profile)
            if issues:
                raise ServiceError(f"Profile validation failed: {', '.join(issues)}")

            self.connection_manager.save_profile(profile)
            self.logger.info(f"Created connection profile: {profile.name}")

            return {
                "success": True,
                "profile_name": profile.name,
                "message": f"Profile '{profile.name}' created successfully"
            }

        except (ServiceError, ConfigError, TypeError, ValueError) as e:
            self.logger.error(f"Failed to create profile: {e}")
            return {
                "success": False,
                "error": str(e)
            }

    def create_profile_from_config(self, config_path: Path, conn_name: str) -> Dict[str, Any]:
        """Create connection profile from YAML config file"""
        try:
            config_data = asyncio.run(self.config_loader.load_yaml(config_path))
            asyncio.run(self.config_loader.validate_config_keys(config_data, ["platform"]))
        except ConfigError as e:
            self.logger.error(f"Failed to create profile from config: {e}")
            return {
                "success": False,
                "error": str(e)
            }

        profile_data = {"name": conn_name}
        for config_key, field in CONFIG_FIELDS.items():
            if config_data.get(config_key) is not None:
                profile_data[field] = config_data[config_key]

        return self.create_profile(profile_data)

    def get_profile(self, profile_name: str) -> Dict[str, Any]:
        """Get connection profile by name"""
        profile = self.connection_manager.get_profile(profile_name)

        if not profile:
            return {
                "success": False,
                "error": f"Profile '{profile_name}' not found"
            }

        return {
            "success": True,
            "profile": profile.to_dict()
        }

    def list_profiles(self) -> Dict[str, Any]:
        """List all connection profiles"""
        profiles = self.connection_manager.list_profiles()

        return {
            "success": True,
            "profiles": [profile.to_dict() for profile in profiles],
            "count": len(profiles)
        }

    def delete_profile(self, profile_name: str) -> Dict[str, Any]:
        """Delete connection profile"""
        if not self.connection_manager.profile_exists(profile_name):
            return {
                "success": False,
                "error": f"Profile '{profile_name}' not found"
            }

        try:
            self.connection_manager.remove_profile(profile_name)
        except ConfigError as e:
            self.logger.error(f"Failed to delete profile {profile_name}: {e}")
            return {
                "success": False,
                "error": str(e)
            }

        self.logger.info(f"Deleted connection profile: {profile_name}")
        return {
            "success": True,
            "message": f"Profile '{profile_name}' deleted successfully"
        }

    def get_context(self, profile_name: str, access_token: Optional[str] = None) -> PlatformContext:
        """
        Platform context for journey operations

        The access token comes from the argument, then JCTL_ACCESS_TOKEN, then the profile.
        """
        profile = self.connection_manager.get_profile(profile_name)
        if not profile:
            raise ConfigError(f"Profile '{profile_name}' not found")

        token = access_token or os.environ.get(ACCESS_TOKEN_ENV)
        context = PlatformContext.from_profile(profile, token)
        if not context.access_token:
            raise ConfigError(
                f"No access token for profile '{profile_name}'. Use --token or set {ACCESS_TOKEN_ENV}"
            )
        return context
