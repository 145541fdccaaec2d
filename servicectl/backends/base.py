"""Abstract base class for platform-specific service backends."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional
import logging
import shlex
import subprocess

from packaging.version import Version

from servicectl.descriptor import ServiceDescriptor
from servicectl.exceptions import NativeToolError, ServiceOperation
from servicectl.status import ServiceStatus

Runner = Callable[..., subprocess.CompletedProcess]


class ServiceBackend(ABC):
    """
    Capability set every native service manager backend implements.

    Backends raise ``ServiceManagerError`` subclasses; turning those into
    outcomes is the controller's job.
    """

    platform = ''

    def __init__(
        self,
        descriptor: ServiceDescriptor,
        logger: Optional[logging.Logger] = None,
        runner: Runner = subprocess.run
    ):
        """
        Initialize the service backend.

        Args:
            descriptor: Descriptor of the service to manage.
            logger: Logger to report progress on. Defaults to a per-backend logger.
            runner: Callable with the ``subprocess.run`` signature used for native tools.
        """
        self.descriptor = descriptor
        self.service_name = descriptor.name
        self.logger = logger or logging.getLogger(f'{self.__class__.__name__}.{descriptor.name}')
        self.runner = runner

    @property
    def definition_path(self) -> Optional[Path]:
        """Path of the on-disk service definition, or None if the platform has none."""
        return None

    @abstractmethod
    def exists(self) -> bool:
        """Return True if the service is registered with the native manager."""
        pass

    @abstractmethod
    def install(self) -> None:
        """Render the service definition and register it, without starting it."""
        pass

    @abstractmethod
    def uninstall(self) -> None:
        """Stop the service (best-effort), deregister it and remove its definition."""
        pass

    @abstractmethod
    def start(self) -> None:
        """Start the service."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop the service."""
        pass

    def restart(self) -> None:
        """Restart the service."""
        self.stop()
        self.start()

    @abstractmethod
    def query_status(self) -> ServiceStatus:
        """Query the native manager for the current state of the service."""
        pass

    @property
    def installed_version(self) -> Optional[Version]:
        """Version stamped into the installed definition, or None."""
        return None

    def _run(
        self,
        operation: ServiceOperation,
        args: List[str],
        check: bool = True
    ) -> subprocess.CompletedProcess:
        command = shlex.join(args)
        self.logger.debug('Running: %s', command)
        try:
            result = self.runner(args, capture_output=True, text=True, check=False)
        except OSError as e:
            self.logger.error('Failed to run %s: %s', args[0], e)
            raise NativeToolError(operation, f'Could not run {args[0]}: {e}') from e

        if check and result.returncode != 0:
            diagnostic = (result.stderr or result.stdout or '').strip()
            self.logger.error('%s exited with code %d: %s', command, result.returncode, diagnostic)
            raise NativeToolError(operation, f'{command} exited with code {result.returncode}: {diagnostic}')
        return result

    def _stop_best_effort(self) -> None:
        try:
            self.stop()
        except NativeToolError as e:
            self.logger.warning('Ignoring stop failure for %s: %s', self.service_name, e.message)

    def _write_definition(self, path: Path, content: str) -> None:
        self.logger.info('Writing service definition to %s', path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding='utf-8')
        except OSError as e:
            self.logger.error('Failed to write %s: %s', path, e)
            raise NativeToolError(ServiceOperation.INSTALL, f'Failed to write {path}: {e}') from e
        try:
            path.chmod(0o644)
        except OSError as e:
            self.logger.warning('Failed to set permissions on %s: %s', path, e)

    def _remove_definition(self, operation: ServiceOperation) -> None:
        path = self.definition_path
        if path is None or not path.exists():
            return
        self.logger.info('Removing service definition %s', path)
        try:
            path.unlink()
        except OSError as e:
            self.logger.error('Failed to delete %s: %s', path, e)
            raise NativeToolError(operation, f'Failed to delete {path}: {e}') from e
