"""
Windows service host for programs that do not speak the SCM control protocol.

``WindowsServiceBackend`` registers ``ProgramServiceHost`` through
``win32serviceutil.InstallService``. The SCM then launches pywin32's service
runner, which reports service status and spawns the configured program as a
child process. Only imported inside that service process.
"""

import subprocess
from pathlib import Path

import servicemanager
import win32event
import win32service
import win32serviceutil

from servicectl.backends.windows import COMMAND_LINE_OPTION, STDERR_LOG_OPTION, STDOUT_LOG_OPTION

POLL_INTERVAL_MS = 1000
STOP_TIMEOUT_SECONDS = 10


class ProgramExitedError(RuntimeError):
    """Raised when the hosted program exits while the service should be running."""

    def __init__(self, command_line: str, returncode: int):
        super().__init__(f'{command_line} exited with code {returncode}')
        self.returncode = returncode


class ProgramServiceHost(win32serviceutil.ServiceFramework):
    """Runs the registered command line as a child of the service process."""

    _svc_name_ = 'servicectl-host'
    _svc_display_name_ = 'servicectl program host'

    def __init__(self, args):
        super().__init__(args)
        self.service_name = args[0]
        self._stop_event = win32event.CreateEvent(None, 0, 0, None)
        self._stop_requested = False
        self._process = None

    def _option(self, name: str):
        return win32serviceutil.GetServiceCustomOption(self.service_name, name)

    def _open_log(self, option: str):
        path = self._option(option)
        if not path:
            return None
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        return open(path, 'ab')

    def SvcStop(self):
        self.ReportServiceStatus(win32service.SERVICE_STOP_PENDING)
        self._stop_requested = True
        win32event.SetEvent(self._stop_event)

    def SvcDoRun(self):
        command_line = self._option(COMMAND_LINE_OPTION)
        stdout_log = self._open_log(STDOUT_LOG_OPTION)
        stderr_log = self._open_log(STDERR_LOG_OPTION)
        try:
            # CreateProcess splits the command line the same way it was quoted
            self._process = subprocess.Popen(command_line, stdout=stdout_log, stderr=stderr_log)
            servicemanager.LogInfoMsg(f'{self.service_name}: started {command_line}')

            while not self._stop_requested:
                win32event.WaitForSingleObject(self._stop_event, POLL_INTERVAL_MS)
                returncode = self._process.poll()
                if returncode is not None and not self._stop_requested:
                    # Failing the service run lets the SCM apply its recovery actions
                    servicemanager.LogErrorMsg(f'{self.service_name}: {command_line} exited with code {returncode}')
                    raise ProgramExitedError(command_line, returncode)

            self._terminate()
            servicemanager.LogInfoMsg(f'{self.service_name}: stopped')
        finally:
            for log in (stdout_log, stderr_log):
                if log is not None:
                    log.close()

    def _terminate(self):
        if self._process is None or self._process.poll() is not None:
            return
        self._process.terminate()
        try:
            self._process.wait(timeout=STOP_TIMEOUT_SECONDS)
        except subprocess.TimeoutExpired:
            self._process.kill()
            self._process.wait()
