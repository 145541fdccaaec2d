"""Linux systemd service backend."""

import re
import subprocess
from pathlib import Path
from typing import Optional

from packaging.version import InvalidVersion, Version

from servicectl.backends.base import ServiceBackend, Runner
from servicectl.descriptor import ServiceDescriptor
from servicectl.exceptions import ServiceOperation
from servicectl.rendering import DefinitionFormat, render_definition
from servicectl.status import InstallationStatus, RunningStatus, ServiceStatus

SYSTEMD_SYSTEM_DIR = Path('/etc/systemd/system')

# systemctl status exit codes (LSB): 0 active, 3 inactive, 4 unknown unit
SYSTEMCTL_STATUS_ACTIVE = 0


class LinuxServiceBackend(ServiceBackend):
    """Linux systemd system service backend."""

    platform = 'linux'

    def __init__(
        self,
        descriptor: ServiceDescriptor,
        logger=None,
        runner: Runner = subprocess.run,
        unit_dir: Path = SYSTEMD_SYSTEM_DIR
    ):
        super().__init__(descriptor, logger, runner)
        self.unit_dir = Path(unit_dir)
        self.unit = f'{descriptor.unit_name}.service'
        self.service_file_path = self.unit_dir / self.unit

        self.logger.debug('service_file_path: %s', self.service_file_path)

    @property
    def definition_path(self) -> Path:
        return self.service_file_path

    def exists(self) -> bool:
        return self.service_file_path.exists()

    def install(self) -> None:
        self.logger.info('Installing service %s as %s', self.service_name, self.unit)
        content = render_definition(self.descriptor, DefinitionFormat.SYSTEMD_UNIT)
        self._write_definition(self.service_file_path, content)

        self._run(ServiceOperation.INSTALL, ['systemctl', 'daemon-reload'])
        self._run(ServiceOperation.INSTALL, ['systemctl', 'enable', self.unit])
        self.logger.info('Service %s registered with systemd', self.service_name)

    def uninstall(self) -> None:
        self.logger.info('Uninstalling service: %s', self.service_name)
        self._stop_best_effort()

        result = self._run(ServiceOperation.UNINSTALL, ['systemctl', 'disable', self.unit], check=False)
        if result.returncode != 0:
            self.logger.warning('Ignoring disable failure for %s: %s', self.unit, result.stderr.strip())

        self._remove_definition(ServiceOperation.UNINSTALL)
        self._run(ServiceOperation.UNINSTALL, ['systemctl', 'daemon-reload'])
        self.logger.info('Service %s successfully uninstalled', self.service_name)

    def start(self) -> None:
        self.logger.info('Starting service: %s', self.service_name)
        self._run(ServiceOperation.START, ['systemctl', 'start', self.unit])

    def stop(self) -> None:
        self.logger.info('Stopping service: %s', self.service_name)
        self._run(ServiceOperation.STOP, ['systemctl', 'stop', self.unit])

    def restart(self) -> None:
        self.logger.info('Restarting service: %s', self.service_name)
        self._run(ServiceOperation.RESTART, ['systemctl', 'restart', self.unit])

    def query_status(self) -> ServiceStatus:
        self.logger.debug('Checking status of service: %s', self.service_name)

        result = self._run(ServiceOperation.STATUS, ['systemctl', 'status', self.unit], check=False)
        installed = self.exists()
        service_status = ServiceStatus(
            InstallationStatus.INSTALLED if installed else InstallationStatus.NOT_INSTALLED,
            RunningStatus.RUNNING if result.returncode == SYSTEMCTL_STATUS_ACTIVE else RunningStatus.NOT_RUNNING,
            report=(result.stdout or result.stderr or '').strip(),
            version=self.installed_version if installed else None,
        )

        self.logger.info('Service %s status: %s', self.service_name, service_status)
        return service_status

    @property
    def installed_version(self) -> Optional[Version]:
        try:
            content = self.service_file_path.read_text(encoding='utf-8')
        except FileNotFoundError:
            self.logger.debug('Service file not found, service may not be installed')
            return None
        except OSError as e:
            self.logger.warning('Failed to read %s: %s', self.service_file_path, e)
            return None

        match = re.search(r'^X-Version=(\S+)$', content, re.MULTILINE)
        if not match:
            self.logger.debug('Version information not found in service file')
            return None
        try:
            return Version(match.group(1))
        except InvalidVersion:
            self.logger.warning('Invalid version in service file: %s', match.group(1))
            return None
