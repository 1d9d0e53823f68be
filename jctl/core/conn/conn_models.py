"""
Connection configuration models
"""

from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any

DEPLOYMENT_TYPES = ("cloud", "forgeops", "classic")


@dataclass
class ConnectionProfile:
    """Target platform connection profile"""
    # Required fields
    platform_url: str  # Platform base URL (required)

    # Optional fields
    name: Optional[str] = None  # Profile name (unique key, defaults to platform_url)
    realm: str = "alpha"  # Realm journeys live in
    deployment_type: str = "cloud"  # cloud | forgeops | classic
    access_token: Optional[str] = None  # Bearer token (can be supplied per command instead)
    am_version: Optional[str] = None  # AM version recorded in export metadata
    managed_user_object: Optional[str] = None  # Override for the realm's managed user object
    description: Optional[str] = None  # User description

    def __post_init__(self):
        """Post-initialization validation and defaults"""
        if not self.platform_url:
            raise ValueError("platform_url is required")
        if self.deployment_type not in DEPLOYMENT_TYPES:
            raise ValueError(
                f"deployment_type must be one of {', '.join(DEPLOYMENT_TYPES)}, got '{self.deployment_type}'"
            )
        if not self.name:
            self.name = self.platform_url

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConnectionProfile":
        """Create profile from dictionary"""
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return asdict(self)

    def has_access_token(self) -> bool:
        """Check if profile carries a stored access token"""
        return bool(self.access_token)
