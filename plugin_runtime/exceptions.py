"""
Custom Exception Classes for the Plugin Runtime

This module defines custom exceptions for better error handling and
consistent error responses across the admin API, the asset proxy and
the client runtime.
"""

from enum import Enum
from typing import Any

from fastapi import status


class ErrorCode(str, Enum):
    """Machine-readable error codes returned in the error envelope."""

    AUTH_FAILED = "AUTH_FAILED"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    PLUGIN_NOT_FOUND = "RESOURCE_PLUGIN_NOT_FOUND"
    PLUGIN_NOT_INSTALLED = "RESOURCE_PLUGIN_NOT_INSTALLED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_ASSET_PATH = "VALIDATION_INVALID_ASSET_PATH"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    PLUGIN_LOAD_FAILED = "PLUGIN_LOAD_FAILED"
    PLUGIN_MOUNT_FAILED = "PLUGIN_MOUNT_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class PluginRuntimeError(Exception):
    """Base exception class for all plugin runtime exceptions"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


# ============================================================================
# Authentication
# ============================================================================


class AuthenticationError(PluginRuntimeError):
    """Raised when an admin call is missing or carries a wrong token"""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message=message, status_code=status.HTTP_401_UNAUTHORIZED, error_code=ErrorCode.AUTH_FAILED)


# ============================================================================
# Resource Not Found Exceptions
# ============================================================================


class ResourceNotFoundError(PluginRuntimeError):
    """Base class for resource not found errors"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Any | None = None,
        error_code: ErrorCode = ErrorCode.RESOURCE_NOT_FOUND,
    ):
        message = f"{resource_type} not found"
        if resource_id is not None:
            message = f"{resource_type} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_code=error_code,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class PluginNotFoundError(ResourceNotFoundError):
    """Raised when a plugin id is absent from the registry snapshot"""

    def __init__(self, plugin_id: str | None = None):
        super().__init__(resource_type="Plugin", resource_id=plugin_id, error_code=ErrorCode.PLUGIN_NOT_FOUND)


class PluginNotInstalledError(ResourceNotFoundError):
    """Raised when a plugin id has no installed record"""

    def __init__(self, plugin_id: str | None = None):
        super().__init__(
            resource_type="Installed plugin", resource_id=plugin_id, error_code=ErrorCode.PLUGIN_NOT_INSTALLED
        )


# ============================================================================
# Validation Exceptions
# ============================================================================


class ValidationError(PluginRuntimeError):
    """Raised when input validation fails"""

    def __init__(self, message: str, field: str | None = None, details: dict[str, Any] | None = None):
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code=ErrorCode.VALIDATION_FAILED,
            details=error_details,
        )


class InvalidAssetPathError(PluginRuntimeError):
    """Raised when an asset path tries to escape the registry namespace"""

    def __init__(self, path: str):
        super().__init__(
            message="Invalid asset path",
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code=ErrorCode.INVALID_ASSET_PATH,
            details={"path": path},
        )


# ============================================================================
# Upstream Exceptions
# ============================================================================


class UpstreamUnavailableError(PluginRuntimeError):
    """Raised when the remote registry cannot be reached or answers with an error"""

    def __init__(self, message: str = "Plugin registry unavailable", path: str | None = None):
        details = {"path": path} if path else {}
        super().__init__(
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code=ErrorCode.UPSTREAM_UNAVAILABLE,
            details=details,
        )


class RateLimitedError(UpstreamUnavailableError):
    """Raised when the remote registry throttles us"""

    def __init__(self, message: str = "Plugin registry rate limit exceeded", path: str | None = None):
        super().__init__(message=message, path=path)
        self.status_code = status.HTTP_429_TOO_MANY_REQUESTS
        self.error_code = ErrorCode.RATE_LIMIT_EXCEEDED


# ============================================================================
# Client Runtime Exceptions
# ============================================================================


class PluginLoadError(PluginRuntimeError):
    """Raised when a plugin's code resource fails to load or execute"""

    def __init__(self, plugin_id: str, reason: str | None = None):
        message = f"Failed to load plugin: {plugin_id}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(
            message=message,
            error_code=ErrorCode.PLUGIN_LOAD_FAILED,
            details={"plugin_id": plugin_id},
        )


class PluginMountError(PluginRuntimeError):
    """Raised when a plugin's component cannot be mounted into the page"""

    def __init__(self, plugin_id: str, reason: str | None = None):
        message = f"Failed to mount plugin: {plugin_id}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(
            message=message,
            error_code=ErrorCode.PLUGIN_MOUNT_FAILED,
            details={"plugin_id": plugin_id},
        )
