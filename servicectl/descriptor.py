"""Service descriptor: the immutable description of one native service."""

import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath, PureWindowsPath
from types import MappingProxyType
from typing import Iterator, List, Mapping, Optional, Tuple, Union

from packaging.version import InvalidVersion, Version

from servicectl.exceptions import InvalidDescriptorError

MAX_NAME_LENGTH = 200

_NAME_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_.-]*$')
_ENV_KEY_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')
_CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f]')

PathLike = Union[str, Path]


def _is_absolute(path: PathLike) -> bool:
    # Descriptors may be built on one OS for another
    text = str(path)
    return PurePosixPath(text).is_absolute() or PureWindowsPath(text).is_absolute()


def _default_log_directory(executable_path: Path) -> Path:
    text = str(executable_path)
    if PurePosixPath(text).is_absolute():
        return Path(text).parent / 'logs'
    return Path(str(PureWindowsPath(text).parent / 'logs'))


def _check_text(field_name: str, value: str) -> None:
    if _CONTROL_CHARS.search(value):
        raise InvalidDescriptorError(f'{field_name} contains control characters: {value!r}')


@dataclass(frozen=True)
class RestartPolicy:
    """
    Restart policy handed to the native service manager.

    The controller never retries anything itself; these values only end up
    in the rendered service definition.
    """

    max_retries: int = 3
    initial_delay_seconds: float = 1.0
    backoff_multiplier: float = 1.5

    def __post_init__(self):
        if self.max_retries < 0:
            raise InvalidDescriptorError(f'max_retries must be >= 0, got {self.max_retries}')
        if self.initial_delay_seconds < 0:
            raise InvalidDescriptorError(
                f'initial_delay_seconds must be >= 0, got {self.initial_delay_seconds}'
            )
        if self.backoff_multiplier < 1:
            raise InvalidDescriptorError(
                f'backoff_multiplier must be >= 1, got {self.backoff_multiplier}'
            )

    def delays(self) -> Iterator[float]:
        """Yield the successive restart delays in seconds."""
        delay = self.initial_delay_seconds
        for _ in range(self.max_retries):
            yield delay
            delay *= self.backoff_multiplier


@dataclass(frozen=True)
class ServiceDescriptor:
    """
    Immutable configuration of the service to manage.

    Args:
        name: Service identifier.
        description: Single-line human readable description.
        executable_path: Absolute path of the program (or script) to run.
        environment: Variables injected into the service environment.
        restart_policy: Advisory restart policy for the native manager.
        log_directory: Absolute directory receiving stdout/stderr where the
            native manager supports redirection.
        interpreter: Optional absolute path of the runtime that executes
            ``executable_path``.
        interpreter_options: Flags passed to the interpreter before the script.
        arguments: Extra arguments passed after the script.
        version: Optional version stamped into the service definition.

    Raises:
        InvalidDescriptorError: If any field cannot be safely rendered.
    """

    name: str
    executable_path: Path
    description: str = ''
    environment: Mapping[str, str] = field(default_factory=dict)
    restart_policy: RestartPolicy = field(default_factory=RestartPolicy)
    log_directory: Optional[Path] = None
    interpreter: Optional[Path] = None
    interpreter_options: Tuple[str, ...] = ()
    arguments: Tuple[str, ...] = ()
    version: Optional[Version] = None

    def __post_init__(self):
        if not self.name:
            raise InvalidDescriptorError('Service name cannot be empty')
        _check_text('name', self.name)
        if len(self.name) > MAX_NAME_LENGTH:
            raise InvalidDescriptorError(f'Service name longer than {MAX_NAME_LENGTH} characters')
        if not _NAME_PATTERN.match(self.name) or '..' in self.name:
            raise InvalidDescriptorError(
                f'Service name may only contain letters, digits, "_", "." and "-": {self.name!r}'
            )

        _check_text('description', self.description)

        object.__setattr__(self, 'executable_path', self._absolute_path('executable_path', self.executable_path))
        if self.log_directory is None:
            object.__setattr__(self, 'log_directory', _default_log_directory(self.executable_path))
        else:
            object.__setattr__(self, 'log_directory', self._absolute_path('log_directory', self.log_directory))
        if self.interpreter is not None:
            object.__setattr__(self, 'interpreter', self._absolute_path('interpreter', self.interpreter))

        environment = {}
        for key, value in dict(self.environment).items():
            if not _ENV_KEY_PATTERN.match(key):
                raise InvalidDescriptorError(f'Invalid environment variable name: {key!r}')
            value = str(value)
            _check_text(f'environment[{key}]', value)
            environment[key] = value
        object.__setattr__(self, 'environment', MappingProxyType(environment))

        for attr in ('interpreter_options', 'arguments'):
            values = tuple(str(v) for v in getattr(self, attr))
            for value in values:
                _check_text(attr, value)
            object.__setattr__(self, attr, values)

        if self.version is not None and not isinstance(self.version, Version):
            try:
                object.__setattr__(self, 'version', Version(str(self.version)))
            except InvalidVersion as e:
                raise InvalidDescriptorError(f'Invalid version: {self.version!r}') from e

    @staticmethod
    def _absolute_path(field_name: str, value: PathLike) -> Path:
        text = str(value)
        _check_text(field_name, text)
        if not _is_absolute(text):
            raise InvalidDescriptorError(f'{field_name} must be an absolute path: {text}')
        return Path(text)

    @property
    def program_arguments(self) -> List[str]:
        """Full argument vector, interpreter first when one is configured."""
        argv = []
        if self.interpreter is not None:
            argv.append(str(self.interpreter))
            argv.extend(self.interpreter_options)
        argv.append(str(self.executable_path))
        argv.extend(self.arguments)
        return argv

    @property
    def unit_name(self) -> str:
        """systemd unit name (lower-cased service name)."""
        return self.name.lower()

    @property
    def label(self) -> str:
        """launchd job label."""
        return f'com.{self.name}'
