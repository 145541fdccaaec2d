"""
servicectl - Install and control a program as a native OS service.

This library provides a uniform install/uninstall/start/stop/restart/status
surface over Linux (systemd), macOS (launchd) and Windows (Service Control
Manager).
"""
__version__ = "0.1.0"

from servicectl.controller import ServiceController, control
from servicectl.descriptor import ServiceDescriptor, RestartPolicy
from servicectl.config import load_descriptor
from servicectl.rendering import DefinitionFormat, render_definition
from servicectl.backends import ServiceBackend, get_backend, detect_platform
from servicectl.status import (
    Outcome,
    OutcomeStatus,
    ServiceStatus,
    InstallationStatus,
    RunningStatus,
)
from servicectl.exceptions import (
    ServiceManagerError,
    ConfigurationMissingError,
    InvalidDescriptorError,
    UnsupportedPlatformError,
    ServiceNotInstalledError,
    NativeToolError,
    ServiceOperation,
)

__all__ = [
    # Main classes
    "ServiceController",
    "control",
    "ServiceDescriptor",
    "RestartPolicy",
    "load_descriptor",
    # Rendering and backends
    "DefinitionFormat",
    "render_definition",
    "ServiceBackend",
    "get_backend",
    "detect_platform",
    # Status types
    "Outcome",
    "OutcomeStatus",
    "ServiceStatus",
    "InstallationStatus",
    "RunningStatus",
    # Exceptions
    "ServiceManagerError",
    "ConfigurationMissingError",
    "InvalidDescriptorError",
    "UnsupportedPlatformError",
    "ServiceNotInstalledError",
    "NativeToolError",
    "ServiceOperation",
]
