"""macOS launchd service backend."""

import plistlib
import subprocess
from pathlib import Path
from typing import Optional

from packaging.version import InvalidVersion, Version

from servicectl.backends.base import ServiceBackend, Runner
from servicectl.descriptor import ServiceDescriptor
from servicectl.exceptions import ServiceOperation
from servicectl.rendering import DefinitionFormat, render_definition
from servicectl.status import InstallationStatus, RunningStatus, ServiceStatus

LAUNCH_DAEMONS_DIR = Path('/Library/LaunchDaemons')


class MacOSServiceBackend(ServiceBackend):
    """macOS launchd system daemon backend."""

    platform = 'darwin'

    def __init__(
        self,
        descriptor: ServiceDescriptor,
        logger=None,
        runner: Runner = subprocess.run,
        daemons_dir: Path = LAUNCH_DAEMONS_DIR
    ):
        super().__init__(descriptor, logger, runner)
        self.label = descriptor.label
        self.plist_path = Path(daemons_dir) / f'{self.label}.plist'

        self.logger.debug('plist_path: %s', self.plist_path)

    @property
    def definition_path(self) -> Path:
        return self.plist_path

    def exists(self) -> bool:
        return self.plist_path.exists()

    def install(self) -> None:
        self.logger.info('Installing service %s as %s', self.service_name, self.label)

        content = render_definition(self.descriptor, DefinitionFormat.LAUNCHD_PLIST)
        log_dir = self.descriptor.log_directory
        self.logger.info('Creating log directory: %s', log_dir)
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.logger.warning('Failed to create log directory %s: %s', log_dir, e)

        self._write_definition(self.plist_path, content)
        self.logger.info('Service %s definition written', self.service_name)

    def uninstall(self) -> None:
        self.logger.info('Uninstalling service: %s', self.service_name)
        self._stop_best_effort()
        self._remove_definition(ServiceOperation.UNINSTALL)
        self.logger.info('Service %s successfully uninstalled', self.service_name)

    def start(self) -> None:
        self.logger.info('Loading service with launchctl: %s', self.label)
        self._run(ServiceOperation.START, ['launchctl', 'load', '-w', str(self.plist_path)])

    def stop(self) -> None:
        self.logger.info('Unloading service with launchctl: %s', self.label)
        self._run(ServiceOperation.STOP, ['launchctl', 'unload', '-w', str(self.plist_path)])

    def restart(self) -> None:
        self.logger.info('Restarting service: %s', self.service_name)
        self._stop_best_effort()
        self.start()

    def query_status(self) -> ServiceStatus:
        self.logger.debug('Checking status of service: %s', self.service_name)

        result = self._run(ServiceOperation.STATUS, ['launchctl', 'list'], check=False)

        # launchctl list prints "PID<TAB>Status<TAB>Label"; PID is "-" when not running
        running = False
        report = f'{self.label} not running'
        for line in result.stdout.splitlines():
            columns = line.split()
            if len(columns) >= 3 and columns[-1] == self.label:
                report = line.strip()
                running = columns[0] != '-'
                break

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
            with open(self.plist_path, 'rb') as f:
                plist_content = plistlib.load(f)
        except FileNotFoundError:
            self.logger.debug('Plist file not found, service may not be installed')
            return None
        except (OSError, plistlib.InvalidFileException) as e:
            self.logger.warning('Failed to read plist file %s: %s', self.plist_path, e)
            return None

        version_str = plist_content.get('Version')
        if not version_str:
            return None
        try:
            return Version(version_str)
        except InvalidVersion:
            self.logger.warning('Invalid version in plist file: %s', version_str)
            return None
