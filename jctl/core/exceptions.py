"""
Core exceptions for jctl
"""

from typing import Any, Dict, List, Optional


class JctlError(Exception):
    """Base exception for jctl"""
    pass

class ConfigError(JctlError):
    """Configuration related errors"""
    pass

class ServiceError(JctlError):
    """Service layer errors"""
    pass


class GatewayError(ServiceError):
    """Platform rejected or failed a configuration object request"""

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.detail = detail


class NotFoundError(GatewayError):
    """Object does not exist on the platform (HTTP 404)"""
    pass


class ValidationError(GatewayError):
    """Platform rejected a payload attribute (HTTP 400)"""
    pass


class ConflictError(GatewayError):
    """Object already exists (HTTP 409)"""
    pass


class JourneyError(ServiceError):
    """Journey service errors"""
    pass


class JourneyExportError(JourneyError):
    """Fatal error while exporting a journey"""
    pass


class JourneyImportError(JourneyError):
    """Fatal error while importing a journey"""
    pass


class MissingScriptError(JourneyImportError):
    """A node references a script that does not exist on the target"""
    pass


class DependencyUnresolvedError(JourneyError):
    """Journeys in an import batch depend on journeys that cannot be resolved"""

    def __init__(self, unresolved: Dict[str, List[str]]):
        self.unresolved = unresolved
        details = "; ".join(
            f"{journey} requires {', '.join(missing)}" for journey, missing in unresolved.items()
        )
        super().__init__(f"{len(unresolved)} journey(s) with unresolved dependencies: {details}")
