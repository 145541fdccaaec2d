"""Platform-specific service backends."""

import logging
import platform as _platform
from typing import Optional

from servicectl.backends.base import ServiceBackend
from servicectl.backends.linux import LinuxServiceBackend
from servicectl.backends.macos import MacOSServiceBackend
from servicectl.backends.windows import WindowsServiceBackend
from servicectl.descriptor import ServiceDescriptor
from servicectl.exceptions import UnsupportedPlatformError

_BACKENDS = {
    'linux': LinuxServiceBackend,
    'darwin': MacOSServiceBackend,
    'windows': WindowsServiceBackend,
}

_ALIASES = {
    'win32': 'windows',
    'macos': 'darwin',
}


def normalize_platform(platform_name: str) -> str:
    """Map ``platform.system()`` / ``sys.platform`` spellings to a backend key."""
    key = (platform_name or '').strip().lower()
    return _ALIASES.get(key, key)


def detect_platform() -> str:
    """Return the backend key of the running platform."""
    return normalize_platform(_platform.system())


def get_backend(
    platform_name: str,
    descriptor: ServiceDescriptor,
    logger: Optional[logging.Logger] = None
) -> ServiceBackend:
    """
    Select the backend for a platform.

    Raises:
        UnsupportedPlatformError: If the platform has no backend.
    """
    backend_class = _BACKENDS.get(normalize_platform(platform_name))
    if backend_class is None:
        raise UnsupportedPlatformError(platform_name)
    return backend_class(descriptor, logger)


__all__ = [
    'ServiceBackend',
    'LinuxServiceBackend',
    'MacOSServiceBackend',
    'WindowsServiceBackend',
    'normalize_platform',
    'detect_platform',
    'get_backend',
]
