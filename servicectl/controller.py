"""Service controller - uniform lifecycle verbs over the native backends."""

import logging
from typing import Optional, Union

from servicectl.backends import detect_platform, get_backend, normalize_platform
from servicectl.backends.base import ServiceBackend
from servicectl.descriptor import ServiceDescriptor
from servicectl.exceptions import (
    ServiceManagerError, ServiceNotInstalledError, ServiceOperation, UnsupportedPlatformError
)
from servicectl.status import Outcome, OutcomeStatus


class ServiceController:
    """
    Cross-platform service controller.

    Wraps a single ``ServiceBackend`` and turns each lifecycle verb into an
    ``Outcome``. Nothing is retried: a failing native call ends the verb with
    an ``ERROR`` outcome carrying the diagnostic text.
    """

    def __init__(self, backend: ServiceBackend, logger: Optional[logging.Logger] = None):
        """
        Initialize the service controller.

        Args:
            backend: Backend for the target platform.
            logger: Logger to report outcomes on. Defaults to a per-service logger.
        """
        self.backend = backend
        self.logger = logger or logging.getLogger(f'{self.__class__.__name__}.{backend.service_name}')

    @property
    def name(self) -> str:
        """Get the service name."""
        return self.backend.service_name

    def install(self) -> Outcome:
        """
        Install the service and start it.

        An already registered service is left untouched and reported as
        ``ALREADY_IN_DESIRED_STATE``. If registering or starting fails after the
        definition was written, the definition stays on disk and the outcome
        detail says where.
        """
        verb = ServiceOperation.INSTALL
        try:
            if self.backend.exists():
                self.logger.info('Service %s is already installed', self.name)
                return self._outcome(verb, OutcomeStatus.ALREADY_IN_DESIRED_STATE,
                                     f'Service {self.name} is already installed')
            self.backend.install()
            self.backend.start()
        except ServiceManagerError as e:
            return self._failure(verb, e, self._orphaned_definition_note())

        self.logger.info('Service %s successfully installed and started', self.name)
        return self._outcome(verb, OutcomeStatus.SUCCESS, f'Service {self.name} installed and started')

    def uninstall(self) -> Outcome:
        """Stop (best-effort) and deregister the service, removing its definition."""
        verb = ServiceOperation.UNINSTALL
        try:
            self._require_installed()
            self.backend.uninstall()
        except ServiceNotInstalledError as e:
            self.logger.info('%s', e)
            return self._not_installed(verb, e)
        except ServiceManagerError as e:
            return self._failure(verb, e)

        self.logger.info('Service %s successfully uninstalled', self.name)
        return self._outcome(verb, OutcomeStatus.SUCCESS, f'Service {self.name} uninstalled')

    def start(self) -> Outcome:
        """Start the service. A missing service is never installed implicitly."""
        return self._lifecycle(ServiceOperation.START, self.backend.start, 'started')

    def stop(self) -> Outcome:
        """Stop the service."""
        return self._lifecycle(ServiceOperation.STOP, self.backend.stop, 'stopped')

    def restart(self) -> Outcome:
        """Restart the service."""
        return self._lifecycle(ServiceOperation.RESTART, self.backend.restart, 'restarted')

    def status(self) -> Outcome:
        """
        Report the native manager's view of the service.

        A stopped or unregistered service is still a successful query; only a
        failure of the query mechanism itself is an ``ERROR``.
        """
        verb = ServiceOperation.STATUS
        try:
            service_status = self.backend.query_status()
        except ServiceManagerError as e:
            return self._failure(verb, e)
        return self._outcome(verb, OutcomeStatus.SUCCESS, service_status.report)

    def dispatch(self, verb: Union[str, ServiceOperation]) -> Outcome:
        """Run the operation named by ``verb``."""
        operation = ServiceOperation(verb)
        return getattr(self, operation.value)()

    def _lifecycle(self, verb: ServiceOperation, action, past_tense: str) -> Outcome:
        try:
            self._require_installed()
            action()
        except ServiceNotInstalledError as e:
            self.logger.error('%s', e)
            return self._not_installed(verb, e)
        except ServiceManagerError as e:
            return self._failure(verb, e)

        self.logger.info('Service %s %s', self.name, past_tense)
        return self._outcome(verb, OutcomeStatus.SUCCESS, f'Service {self.name} {past_tense}')

    def _require_installed(self) -> None:
        if not self.backend.exists():
            raise ServiceNotInstalledError(f'Service {self.name} is not installed')

    def _orphaned_definition_note(self) -> str:
        path = self.backend.definition_path
        if path is None or not path.exists():
            return ''
        self.logger.warning('Service definition left in place at %s', path)
        return f'service definition left in place at {path}'

    def _outcome(self, verb: ServiceOperation, status: OutcomeStatus, detail: str = '') -> Outcome:
        return Outcome(verb, self.backend.platform, status, detail)

    def _not_installed(self, verb: ServiceOperation, error: ServiceNotInstalledError) -> Outcome:
        return self._outcome(verb, OutcomeStatus.NOT_INSTALLED, str(error))

    def _failure(self, verb: ServiceOperation, error: ServiceManagerError, note: str = '') -> Outcome:
        detail = str(error)
        if note:
            detail = f'{detail}; {note}'
        self.logger.error('Service %s: %s', self.name, detail)
        return self._outcome(verb, OutcomeStatus.ERROR, detail)


def control(
    verb: Union[str, ServiceOperation],
    descriptor: ServiceDescriptor,
    platform: Optional[str] = None,
    logger: Optional[logging.Logger] = None
) -> Outcome:
    """
    Resolve the backend for ``platform`` once and run ``verb`` against it.

    Args:
        verb: Operation to run.
        descriptor: Descriptor of the service.
        platform: Target platform; defaults to the running one.
        logger: Logger shared by the controller and the backend.

    Returns:
        The outcome of the operation. An unsupported platform yields an
        ``ERROR`` outcome without any native call.
    """
    operation = ServiceOperation(verb)
    platform_name = platform or detect_platform()
    try:
        backend = get_backend(platform_name, descriptor, logger)
    except UnsupportedPlatformError as e:
        (logger or logging.getLogger(__name__)).error('%s', e)
        return Outcome(operation, normalize_platform(platform_name), OutcomeStatus.ERROR, str(e))
    return ServiceController(backend, logger).dispatch(operation)
