"""Service status and outcome types."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from packaging.version import Version

from servicectl.exceptions import ServiceOperation


class InstallationStatus(Enum):
    """Status indicating whether a service is installed."""
    INSTALLED = "INSTALLED"
    NOT_INSTALLED = "NOT_INSTALLED"


class RunningStatus(Enum):
    """Status indicating whether a service is currently running."""
    RUNNING = "RUNNING"
    NOT_RUNNING = "NOT_RUNNING"


class OutcomeStatus(Enum):
    """Result category of a single controller operation."""
    SUCCESS = "SUCCESS"
    ALREADY_IN_DESIRED_STATE = "ALREADY_IN_DESIRED_STATE"
    NOT_INSTALLED = "NOT_INSTALLED"
    ERROR = "ERROR"

    @property
    def exit_code(self) -> int:
        """Process exit code reported by the CLI for this status."""
        return _EXIT_CODES[self]


_EXIT_CODES = {
    OutcomeStatus.SUCCESS: 0,
    OutcomeStatus.ALREADY_IN_DESIRED_STATE: 0,
    OutcomeStatus.ERROR: 1,
    OutcomeStatus.NOT_INSTALLED: 2,
}


class ServiceStatus:
    """Snapshot of a service as reported by the native manager."""

    def __init__(
        self,
        installation_status: InstallationStatus,
        running_status: RunningStatus,
        report: str = '',
        version: Optional[Version] = None
    ):
        self.installation_status = installation_status
        self.running_status = running_status
        self.report = report
        self.version = version

    def __str__(self) -> str:
        return (
            f'ServiceStatus('
            f'installation={self.installation_status.name}, '
            f'running={self.running_status.name}, '
            f'version={self.version})'
        )

    def __repr__(self) -> str:
        return self.__str__()


@dataclass(frozen=True)
class Outcome:
    """Result of one controller operation."""

    verb: ServiceOperation
    platform: str
    status: OutcomeStatus
    detail: str = ''

    @property
    def ok(self) -> bool:
        return self.status in (OutcomeStatus.SUCCESS, OutcomeStatus.ALREADY_IN_DESIRED_STATE)

    def __str__(self) -> str:
        text = f'{self.verb.value} on {self.platform}: {self.status.name}'
        if self.detail:
            text = f'{text}\n{self.detail}'
        return text
