"""Rendering of native service definitions from a descriptor.

Every renderer is a pure function of the descriptor. Field values are
escaped for the target format; values that cannot be represented safely
raise ``InvalidDescriptorError`` instead of being written.
"""

import math
import plistlib
import re
import subprocess
from enum import Enum
from pathlib import Path
from typing import Tuple

from servicectl.descriptor import RestartPolicy, ServiceDescriptor
from servicectl.exceptions import InvalidDescriptorError


class DefinitionFormat(Enum):
    """Target formats for a rendered service definition."""
    SYSTEMD_UNIT = 'systemd-unit'
    LAUNCHD_PLIST = 'launchd-plist'
    WINDOWS_COMMAND_LINE = 'windows-command-line'


SYSTEMD_UNIT_TEMPLATE = """[Unit]
Description={description}
After=network.target
{unit_options}
[Service]
ExecStart={exec_start}
Restart=on-failure
RestartSec={restart_sec}
{restart_options}{environment}StandardOutput=syslog
StandardError=syslog
SyslogIdentifier={identifier}

[Install]
WantedBy=multi-user.target
"""

# systemd's own StartLimitIntervalSec default
DEFAULT_START_LIMIT_INTERVAL_SECONDS = 10

# Characters that force a systemd word into double quotes
_SYSTEMD_NEEDS_QUOTING = re.compile(r'[\s"\'\\;]')


def _systemd_quote(value: str) -> str:
    if value and not _SYSTEMD_NEEDS_QUOTING.search(value):
        return value
    escaped = value.replace('\\', '\\\\').replace('"', '\\"')
    return f'"{escaped}"'


def _systemd_exec_word(value: str) -> str:
    return _systemd_quote(value.replace('%', '%%').replace('$', '$$'))


def _systemd_environment(key: str, value: str) -> str:
    return _systemd_quote(f'{key}={value}'.replace('%', '%%'))


def _systemd_description(descriptor: ServiceDescriptor) -> str:
    description = descriptor.description or f'{descriptor.name} service'
    if description.endswith('\\'):
        # A trailing backslash continues the line in unit files
        raise InvalidDescriptorError('description must not end with a backslash')
    return description.replace('%', '%%')


def _seconds(value: float) -> str:
    return f'{value:g}s'


def _systemd_restart_steps(policy: RestartPolicy) -> str:
    # systemd >= 254 grows RestartSec geometrically to RestartMaxDelaySec over
    # RestartSteps restarts, which reproduces policy.delays() exactly
    delays = list(policy.delays())
    if len(delays) < 2 or policy.initial_delay_seconds == 0 or policy.backoff_multiplier == 1:
        return ''
    return (
        f'RestartSteps={len(delays) - 1}\n'
        f'RestartMaxDelaySec={_seconds(delays[-1])}\n'
    )


def log_files(descriptor: ServiceDescriptor) -> Tuple[Path, Path]:
    """Return the (stdout, stderr) log file paths for a descriptor."""
    return (
        descriptor.log_directory / f'{descriptor.name}.out.log',
        descriptor.log_directory / f'{descriptor.name}.err.log',
    )


def render_systemd_unit(descriptor: ServiceDescriptor) -> str:
    policy = descriptor.restart_policy

    unit_options = ''
    if policy.max_retries > 0:
        # initial start plus the allowed restarts, counted over the whole backoff schedule
        window = math.ceil(sum(policy.delays())) + DEFAULT_START_LIMIT_INTERVAL_SECONDS
        unit_options += f'StartLimitIntervalSec={window}s\n'
        unit_options += f'StartLimitBurst={policy.max_retries + 1}\n'
    if descriptor.version is not None:
        unit_options += f'X-Version={descriptor.version}\n'

    environment = ''.join(
        f'Environment={_systemd_environment(key, value)}\n'
        for key, value in descriptor.environment.items()
    )

    return SYSTEMD_UNIT_TEMPLATE.format(
        description=_systemd_description(descriptor),
        unit_options=unit_options,
        exec_start=' '.join(_systemd_exec_word(arg) for arg in descriptor.program_arguments),
        restart_sec=_seconds(policy.initial_delay_seconds),
        restart_options=_systemd_restart_steps(policy),
        environment=environment,
        identifier=descriptor.unit_name,
    )


def render_launchd_plist(descriptor: ServiceDescriptor) -> str:
    stdout_log, stderr_log = log_files(descriptor)
    plist_content = {
        'Label': descriptor.label,
        'ProgramArguments': descriptor.program_arguments,
        'RunAtLoad': True,
        'KeepAlive': {'SuccessfulExit': False},
        'ThrottleInterval': max(1, math.ceil(descriptor.restart_policy.initial_delay_seconds)),
        'StandardOutPath': str(stdout_log),
        'StandardErrorPath': str(stderr_log),
    }
    if descriptor.description:
        plist_content['ServiceDescription'] = descriptor.description
    if descriptor.environment:
        plist_content['EnvironmentVariables'] = dict(descriptor.environment)
    if descriptor.version is not None:
        plist_content['Version'] = str(descriptor.version)
    return plistlib.dumps(plist_content).decode('utf-8')


def render_windows_command_line(descriptor: ServiceDescriptor) -> str:
    # MS C runtime quoting; the service host hands this line to CreateProcess
    return subprocess.list2cmdline(descriptor.program_arguments)


_RENDERERS = {
    DefinitionFormat.SYSTEMD_UNIT: render_systemd_unit,
    DefinitionFormat.LAUNCHD_PLIST: render_launchd_plist,
    DefinitionFormat.WINDOWS_COMMAND_LINE: render_windows_command_line,
}


def render_definition(descriptor: ServiceDescriptor, fmt: DefinitionFormat) -> str:
    """
    Render the native service definition for a descriptor.

    Args:
        descriptor: Validated service descriptor.
        fmt: Target definition format.

    Returns:
        The definition content as a string.

    Raises:
        InvalidDescriptorError: If a field cannot be represented safely in the format.
    """
    return _RENDERERS[fmt](descriptor)
