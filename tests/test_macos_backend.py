"""Tests for the launchd backend command sequences."""

import plistlib
from pathlib import Path

import pytest
from packaging.version import Version

from servicectl import InstallationStatus, NativeToolError, RunningStatus, ServiceDescriptor
from servicectl.backends import MacOSServiceBackend

LAUNCHCTL_LIST = (
    "PID\tStatus\tLabel\n"
    "-\t0\tcom.apple.SafariHistoryServiceAgent\n"
    "412\t0\tcom.demo2\n"
)


class TestMacOSInstall:
    """Tests for installing a launchd property list."""

    def test_install_writes_plist_without_loading(self, macos_backend, runner, tmp_path):
        macos_backend.install()

        plist_path = tmp_path / "LaunchDaemons" / "com.demo.plist"
        assert macos_backend.definition_path == plist_path
        with open(plist_path, "rb") as f:
            plist = plistlib.load(f)
        assert plist["Label"] == "com.demo"
        assert plist["StandardOutPath"] == str(tmp_path / "logs" / "demo.out.log")
        assert (tmp_path / "logs").is_dir()
        assert runner.calls == []
        assert macos_backend.exists()

    def test_installed_version(self, macos_backend):
        assert macos_backend.installed_version is None


class TestMacOSLifecycle:
    """Tests for load/unload based lifecycle."""

    def test_start_loads_plist(self, macos_backend, runner):
        macos_backend.start()
        assert runner.calls == [["launchctl", "load", "-w", str(macos_backend.plist_path)]]

    def test_stop_unloads_plist(self, macos_backend, runner):
        macos_backend.stop()
        assert runner.calls == [["launchctl", "unload", "-w", str(macos_backend.plist_path)]]

    def test_restart_ignores_unload_failure(self, macos_backend, runner):
        runner.set_result(["launchctl", "unload"], returncode=1, stderr="Could not find specified service")

        macos_backend.restart()

        assert [call[1] for call in runner.calls] == ["unload", "load"]

    def test_load_failure_raises(self, macos_backend, runner):
        runner.set_result(["launchctl", "load"], returncode=1, stderr="Load failed: 5: Input/output error")

        with pytest.raises(NativeToolError) as exc_info:
            macos_backend.start()
        assert "Input/output error" in exc_info.value.message

    def test_uninstall_removes_plist(self, macos_backend, runner):
        macos_backend.install()

        macos_backend.uninstall()

        assert not macos_backend.exists()
        assert runner.calls == [["launchctl", "unload", "-w", str(macos_backend.plist_path)]]


class TestMacOSStatus:
    """Tests for launchctl list filtering."""

    def test_running_service(self, macos_backend, runner):
        runner.set_result(["launchctl", "list"], stdout=LAUNCHCTL_LIST + "8123\t0\tcom.demo\n")

        status = macos_backend.query_status()

        assert status.running_status == RunningStatus.RUNNING
        assert status.report == "8123\t0\tcom.demo"

    def test_loaded_but_not_running(self, macos_backend, runner):
        runner.set_result(["launchctl", "list"], stdout=LAUNCHCTL_LIST + "-\t78\tcom.demo\n")

        status = macos_backend.query_status()

        assert status.running_status == RunningStatus.NOT_RUNNING
        assert status.report == "-\t78\tcom.demo"

    def test_absent_label_reports_not_running(self, macos_backend, runner):
        runner.set_result(["launchctl", "list"], stdout=LAUNCHCTL_LIST)

        status = macos_backend.query_status()

        assert status.installation_status == InstallationStatus.NOT_INSTALLED
        assert status.running_status == RunningStatus.NOT_RUNNING
        assert status.report == "com.demo not running"
        assert runner.calls == [["launchctl", "list"]]

    def test_version_reported_when_installed(self, runner, tmp_path):
        descriptor = ServiceDescriptor(
            name="demo",
            executable_path=Path("/opt/demo/app"),
            log_directory=tmp_path / "logs",
            version="3.1.0",
        )
        backend = MacOSServiceBackend(descriptor, runner=runner, daemons_dir=tmp_path)
        backend.install()

        assert backend.query_status().version == Version("3.1.0")
