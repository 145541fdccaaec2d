"""Windows Service Control Manager backend."""

import re
import subprocess
from typing import Optional

import psutil
from packaging.version import InvalidVersion, Version

from servicectl.backends.base import ServiceBackend, Runner
from servicectl.descriptor import ServiceDescriptor
from servicectl.exceptions import NativeToolError, ServiceOperation, UnsupportedPlatformError
from servicectl.rendering import DefinitionFormat, log_files, render_definition
from servicectl.status import InstallationStatus, RunningStatus, ServiceStatus

SERVICES_REGISTRY_KEY = r'SYSTEM\CurrentControlSet\Services'
FAILURE_RESET_PERIOD_SECONDS = 86400

# Registered instead of the program itself; see windows_host.py
HOST_CLASS_STRING = 'servicectl.backends.windows_host.ProgramServiceHost'

# Custom options stored under Services\<name>\Parameters for the host
COMMAND_LINE_OPTION = 'CommandLine'
STDOUT_LOG_OPTION = 'StdoutLog'
STDERR_LOG_OPTION = 'StderrLog'


def _pywin32():
    try:
        import pywintypes
        import win32service
        import win32serviceutil
    except ImportError as e:
        raise UnsupportedPlatformError('windows', f'pywin32 is not available: {e}') from e
    return pywintypes, win32service, win32serviceutil


def _winreg():
    import winreg
    return winreg


class WindowsServiceBackend(ServiceBackend):
    """
    Windows native service backend built on pywin32 and psutil.

    The SCM only starts processes that answer its control requests, so the
    service is registered with pywin32's host (``ProgramServiceHost``), which
    runs the descriptor's command line as a child process.
    """

    platform = 'windows'

    def __init__(
        self,
        descriptor: ServiceDescriptor,
        logger=None,
        runner: Runner = subprocess.run
    ):
        """
        Raises:
            UnsupportedPlatformError: If the Windows service APIs are unavailable on this host.
        """
        super().__init__(descriptor, logger, runner)
        if not hasattr(psutil, 'win_service_get'):
            raise UnsupportedPlatformError(self.platform, 'Windows service APIs are not available on this host')
        _pywin32()

    def exists(self) -> bool:
        try:
            psutil.win_service_get(self.service_name)
        except psutil.NoSuchProcess:
            return False
        except psutil.Error as e:
            raise NativeToolError(ServiceOperation.STATUS, f'Failed to query service: {e}') from e
        return True

    @property
    def description(self) -> str:
        description = self.descriptor.description or f'{self.service_name} service'
        if self.descriptor.version is not None:
            description = f'{description} (version={self.descriptor.version})'
        return description

    def install(self) -> None:
        self.logger.info('Installing service: %s', self.service_name)
        pywintypes, win32service, win32serviceutil = _pywin32()
        command_line = render_definition(self.descriptor, DefinitionFormat.WINDOWS_COMMAND_LINE)
        stdout_log, stderr_log = log_files(self.descriptor)

        try:
            win32serviceutil.InstallService(
                HOST_CLASS_STRING,
                self.service_name,
                self.service_name,
                startType=win32service.SERVICE_AUTO_START,
                description=self.description,
            )
            win32serviceutil.SetServiceCustomOption(self.service_name, COMMAND_LINE_OPTION, command_line)
            win32serviceutil.SetServiceCustomOption(self.service_name, STDOUT_LOG_OPTION, str(stdout_log))
            win32serviceutil.SetServiceCustomOption(self.service_name, STDERR_LOG_OPTION, str(stderr_log))
            if self.descriptor.restart_policy.max_retries > 0:
                self._configure_failure_actions(win32service)
        except pywintypes.error as e:
            self.logger.error('Failed to create service: %s', e.strerror)
            raise NativeToolError(ServiceOperation.INSTALL, f'Failed to create service: {e.strerror}') from e

        if self.descriptor.environment:
            self._write_environment()
        self.logger.info('Service %s registered with the SCM', self.service_name)

    def _configure_failure_actions(self, win32service) -> None:
        hscm = win32service.OpenSCManager(None, None, win32service.SC_MANAGER_ALL_ACCESS)
        try:
            hs = win32service.OpenService(hscm, self.service_name, win32service.SERVICE_ALL_ACCESS)
            try:
                win32service.ChangeServiceConfig2(
                    hs, win32service.SERVICE_CONFIG_FAILURE_ACTIONS, self._failure_actions(win32service)
                )
                # The host reports a failed stop when the program exits; count that as a failure too
                win32service.ChangeServiceConfig2(hs, win32service.SERVICE_CONFIG_FAILURE_ACTIONS_FLAG, True)
            finally:
                win32service.CloseServiceHandle(hs)
        finally:
            win32service.CloseServiceHandle(hscm)

    def _failure_actions(self, win32service) -> dict:
        actions = [
            (win32service.SC_ACTION_RESTART, int(delay * 1000))
            for delay in self.descriptor.restart_policy.delays()
        ]
        return {
            'ResetPeriod': FAILURE_RESET_PERIOD_SECONDS,
            'RebootMsg': '',
            'Command': '',
            'Actions': actions,
        }

    def _write_environment(self) -> None:
        winreg = _winreg()
        key_path = f'{SERVICES_REGISTRY_KEY}\\{self.service_name}'
        values = [f'{key}={value}' for key, value in self.descriptor.environment.items()]
        self.logger.info('Writing service environment to HKLM\\%s', key_path)
        try:
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, key_path, 0, winreg.KEY_SET_VALUE) as key:
                winreg.SetValueEx(key, 'Environment', 0, winreg.REG_MULTI_SZ, values)
        except OSError as e:
            self.logger.error('Failed to write service environment: %s', e)
            raise NativeToolError(ServiceOperation.INSTALL, f'Failed to write service environment: {e}') from e

    def uninstall(self) -> None:
        self.logger.info('Uninstalling service: %s', self.service_name)
        pywintypes, _, win32serviceutil = _pywin32()
        self._stop_best_effort()
        try:
            win32serviceutil.RemoveService(self.service_name)
        except pywintypes.error as e:
            self.logger.error('Failed to remove service: %s', e.strerror)
            raise NativeToolError(ServiceOperation.UNINSTALL, f'Failed to remove service: {e.strerror}') from e
        self.logger.info('Service %s successfully uninstalled', self.service_name)

    def start(self) -> None:
        self.logger.info('Starting service: %s', self.service_name)
        self._call(ServiceOperation.START, 'StartService')

    def stop(self) -> None:
        self.logger.info('Stopping service: %s', self.service_name)
        self._call(ServiceOperation.STOP, 'StopService')

    def restart(self) -> None:
        self.logger.info('Restarting service: %s', self.service_name)
        self._call(ServiceOperation.RESTART, 'RestartService')

    def _call(self, operation: ServiceOperation, function_name: str) -> None:
        pywintypes, _, win32serviceutil = _pywin32()
        try:
            getattr(win32serviceutil, function_name)(self.service_name)
        except pywintypes.error as e:
            self.logger.error('%s failed: %s', function_name, e.strerror)
            raise NativeToolError(operation, f'{function_name} failed: {e.strerror}') from e

    def query_status(self) -> ServiceStatus:
        self.logger.debug('Checking status of service: %s', self.service_name)

        result = self._run(ServiceOperation.STATUS, ['sc', 'query', self.service_name], check=False)
        report = (result.stdout or result.stderr or '').strip()
        running = re.search(r'STATE\s*:\s*\d+\s+RUNNING', report) is not None

        installed = self.exists()
        service_status = ServiceStatus(
            InstallationStatus.INSTALLED if installed else InstallationStatus.NOT_INSTALLED,
            RunningStatus.RUNNING if running else RunningStatus.NOT_RUNNING,
            report=report,
            version=self.installed_version if installed else None,
        )

        self.logger.info('Service %s status: %s', self.service_name, service_status)
        return service_status

    @property
    def installed_version(self) -> Optional[Version]:
        try:
            description = psutil.win_service_get(self.service_name).description()
        except psutil.Error as e:
            self.logger.warning('Error getting service description: %s', e)
            return None

        version_match = re.search(r'version=([\w.+-]+)\)', description or '')
        if not version_match:
            self.logger.debug('Version not found in description')
            return None
        try:
            return Version(version_match.group(1))
        except InvalidVersion:
            self.logger.warning('Invalid version in description: %s', version_match.group(1))
            return None
