"""Pytest configuration and fixtures for servicectl tests."""

import logging
import subprocess
from pathlib import Path
from typing import Dict, List, Tuple

import pytest

from servicectl import (
    InstallationStatus,
    NativeToolError,
    RunningStatus,
    ServiceBackend,
    ServiceDescriptor,
    ServiceOperation,
    ServiceStatus,
)
from servicectl.backends import LinuxServiceBackend, MacOSServiceBackend

# Configure logging for tests
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# Test configuration
TEST_SERVICE_NAME = "demo"
TEST_SCRIPT_PATH = "/opt/demo/app"
TEST_ENVIRONMENT = {"NODE_ENV": "production"}

MUTATING_OPERATIONS = {"install", "uninstall", "start", "stop", "restart"}


class FakeRunner:
    """Stand-in for ``subprocess.run`` that records every command.

    Commands succeed with empty output unless a result was registered for a
    matching argument prefix.
    """

    def __init__(self):
        self.calls: List[List[str]] = []
        self._results: Dict[Tuple[str, ...], subprocess.CompletedProcess] = {}
        self._errors: Dict[Tuple[str, ...], OSError] = {}

    def set_result(self, prefix: List[str], returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        self._results[tuple(prefix)] = subprocess.CompletedProcess(prefix, returncode, stdout, stderr)

    def set_error(self, prefix: List[str], error: OSError) -> None:
        self._errors[tuple(prefix)] = error

    def __call__(self, args, **kwargs):
        args = list(args)
        self.calls.append(args)
        for prefix, error in self._errors.items():
            if tuple(args[:len(prefix)]) == prefix:
                raise error
        for prefix, result in self._results.items():
            if tuple(args[:len(prefix)]) == prefix:
                return subprocess.CompletedProcess(args, result.returncode, result.stdout, result.stderr)
        return subprocess.CompletedProcess(args, 0, "", "")


class FakeBackend(ServiceBackend):
    """In-memory backend recording which capabilities the controller used."""

    platform = "fake"

    def __init__(self, descriptor: ServiceDescriptor, installed: bool = False, fail_on=()):
        super().__init__(descriptor)
        self.installed = installed
        self.running = installed
        self.fail_on = set(fail_on)
        self.calls: List[str] = []
        self.renders = 0

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_on:
            raise NativeToolError(ServiceOperation(operation), "simulated failure")

    def exists(self) -> bool:
        return self.installed

    def install(self) -> None:
        self._record("install")
        self.renders += 1
        self.installed = True

    def uninstall(self) -> None:
        self._record("uninstall")
        self.installed = False
        self.running = False

    def start(self) -> None:
        self._record("start")
        self.running = True

    def stop(self) -> None:
        self._record("stop")
        self.running = False

    def restart(self) -> None:
        self._record("restart")
        self.running = True

    def query_status(self) -> ServiceStatus:
        self._record("status")
        return ServiceStatus(
            InstallationStatus.INSTALLED if self.installed else InstallationStatus.NOT_INSTALLED,
            RunningStatus.RUNNING if self.running else RunningStatus.NOT_RUNNING,
            report="fake: running" if self.running else "fake: not running",
        )


@pytest.fixture
def descriptor() -> ServiceDescriptor:
    """Fixture providing the descriptor of the demo service."""
    return ServiceDescriptor(
        name=TEST_SERVICE_NAME,
        executable_path=Path(TEST_SCRIPT_PATH),
        description="Demo API running as a service",
        environment=TEST_ENVIRONMENT,
    )


@pytest.fixture
def runner() -> FakeRunner:
    """Fixture providing a recording command runner."""
    return FakeRunner()


@pytest.fixture
def linux_backend(descriptor: ServiceDescriptor, runner: FakeRunner, tmp_path: Path) -> LinuxServiceBackend:
    """Fixture providing a systemd backend writing units below tmp_path."""
    return LinuxServiceBackend(descriptor, runner=runner, unit_dir=tmp_path / "systemd")


@pytest.fixture
def macos_backend(runner: FakeRunner, tmp_path: Path) -> MacOSServiceBackend:
    """Fixture providing a launchd backend writing plists below tmp_path."""
    descriptor = ServiceDescriptor(
        name=TEST_SERVICE_NAME,
        executable_path=Path(TEST_SCRIPT_PATH),
        environment=TEST_ENVIRONMENT,
        log_directory=tmp_path / "logs",
    )
    return MacOSServiceBackend(descriptor, runner=runner, daemons_dir=tmp_path / "LaunchDaemons")
