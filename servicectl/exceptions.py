"""Service controller exceptions."""

from enum import Enum
from typing import Optional


class ServiceOperation(Enum):
    """Operations that can be performed on a service."""
    INSTALL = 'install'
    UNINSTALL = 'uninstall'
    START = 'start'
    STOP = 'stop'
    RESTART = 'restart'
    STATUS = 'status'


class ServiceManagerError(Exception):
    """Base exception for service manager errors."""
    pass


class ConfigurationMissingError(ServiceManagerError):
    """Raised when the configuration file or the target executable is absent."""
    pass


class InvalidDescriptorError(ServiceManagerError, ValueError):
    """Raised when a descriptor field cannot be safely rendered."""
    pass


class UnsupportedPlatformError(ServiceManagerError):
    """Raised when no backend exists for the requested platform."""

    def __init__(self, platform_name: str, reason: Optional[str] = None):
        message = f'Unsupported platform: {platform_name}'
        if reason:
            message = f'{message} ({reason})'
        super().__init__(message)
        self.platform_name = platform_name
        self.reason = reason


class ServiceNotInstalledError(ServiceManagerError):
    """Raised when an operation requires the service to be installed."""
    pass


class NativeToolError(ServiceManagerError):
    """Raised when the native service manager reports a failure."""

    def __init__(self, operation: ServiceOperation, message: str):
        super().__init__(f'Operation {operation.value} failed: {message}')
        self.operation = operation
        self.message = message
