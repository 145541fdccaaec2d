"""Loading of the service descriptor from a JSON configuration file."""

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from servicectl.descriptor import RestartPolicy, ServiceDescriptor
from servicectl.exceptions import ConfigurationMissingError, InvalidDescriptorError

DEFAULT_CONFIG_FILE = 'service.json'
CONFIG_ENV_VAR = 'SERVICECTL_CONFIG'

logger = logging.getLogger(__name__)


def default_config_path() -> Path:
    """Configuration path from ``SERVICECTL_CONFIG``, else ``service.json`` in the working directory."""
    return Path(os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE))


def _parse_environment(raw: Any) -> Dict[str, str]:
    # Accepts {"KEY": "value"}, {"name": "KEY", "value": "value"} or a list of the latter
    if raw is None:
        return {}
    if isinstance(raw, list):
        environment = {}
        for item in raw:
            environment.update(_parse_environment(item))
        return environment
    if not isinstance(raw, dict):
        raise InvalidDescriptorError(f'env must be an object or a list, got {type(raw).__name__}')
    if set(raw) == {'name', 'value'}:
        return {str(raw['name']): str(raw['value'])}
    return {str(key): str(value) for key, value in raw.items()}


def _parse_restart_policy(raw: Optional[Mapping[str, Any]]) -> RestartPolicy:
    if raw is None:
        return RestartPolicy()
    if not isinstance(raw, dict):
        raise InvalidDescriptorError('retryStrategy must be an object')

    defaults = RestartPolicy()
    try:
        max_retries = int(raw.get('maxRetries', defaults.max_retries))
        initial_delay = float(raw.get('initialDelaySeconds', raw.get('wait', defaults.initial_delay_seconds)))
        if 'backoffMultiplier' in raw:
            multiplier = float(raw['backoffMultiplier'])
        elif 'grow' in raw:
            # "grow" is the fractional increase per failure
            multiplier = 1.0 + float(raw['grow'])
        else:
            multiplier = defaults.backoff_multiplier
    except (TypeError, ValueError) as e:
        raise InvalidDescriptorError(f'Invalid retryStrategy: {e}') from e
    return RestartPolicy(max_retries, initial_delay, multiplier)


def _string_list(data: Mapping[str, Any], *keys: str) -> tuple:
    for key in keys:
        if key in data:
            value = data[key]
            if not isinstance(value, list):
                raise InvalidDescriptorError(f'{key} must be a list of strings')
            return tuple(str(v) for v in value)
    return ()


def _resolve_interpreter(value: str) -> Path:
    path = Path(value)
    if path.is_absolute():
        if not path.exists():
            raise ConfigurationMissingError(f'Interpreter not found: {path}')
        return path
    found = shutil.which(value)
    if found is None:
        raise ConfigurationMissingError(f'Interpreter not found on PATH: {value}')
    return Path(found).resolve()


def descriptor_from_mapping(data: Mapping[str, Any], base_dir: Path) -> ServiceDescriptor:
    """
    Build a descriptor from parsed configuration content.

    Args:
        data: Parsed configuration object.
        base_dir: Directory that relative paths resolve against.

    Raises:
        ConfigurationMissingError: If the script or interpreter does not exist.
        InvalidDescriptorError: If the configuration content is malformed.
    """
    if not isinstance(data, dict):
        raise InvalidDescriptorError('Configuration must be a JSON object')
    for key in ('serviceName', 'scriptPath'):
        if not data.get(key):
            raise InvalidDescriptorError(f'Missing required configuration key: {key}')

    script_path = (base_dir / str(data['scriptPath'])).resolve()
    if not script_path.exists():
        raise ConfigurationMissingError(f'Cannot find script at {script_path}')

    interpreter = None
    if data.get('interpreter'):
        interpreter = _resolve_interpreter(str(data['interpreter']))

    log_directory = (base_dir / str(data.get('logPath', 'logs'))).resolve()

    return ServiceDescriptor(
        name=str(data['serviceName']),
        executable_path=script_path,
        description=str(data.get('description', '')),
        environment=_parse_environment(data.get('env')),
        restart_policy=_parse_restart_policy(data.get('retryStrategy')),
        log_directory=log_directory,
        interpreter=interpreter,
        interpreter_options=_string_list(data, 'interpreterOptions', 'nodeOptions'),
        arguments=_string_list(data, 'args'),
        version=data.get('version'),
    )


def load_descriptor(path: Optional[Union[str, Path]] = None) -> ServiceDescriptor:
    """
    Load the service descriptor from a JSON configuration file.

    Args:
        path: Configuration file. Defaults to ``default_config_path()``.

    Raises:
        ConfigurationMissingError: If the file, the script or the interpreter is absent.
        InvalidDescriptorError: If the file is not valid configuration.
    """
    config_path = Path(path) if path is not None else default_config_path()
    config_path = config_path.expanduser().resolve()
    logger.debug('Loading configuration from %s', config_path)

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationMissingError(f'Configuration file not found: {config_path}') from e
    except json.JSONDecodeError as e:
        raise InvalidDescriptorError(f'Invalid JSON in {config_path}: {e}') from e

    return descriptor_from_mapping(data, config_path.parent)
