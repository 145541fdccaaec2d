"""Tests for loading the service descriptor from JSON configuration."""

import json
import sys
from pathlib import Path

import pytest
from packaging.version import Version

from servicectl import (
    ConfigurationMissingError,
    InvalidDescriptorError,
    RestartPolicy,
    load_descriptor,
)
from servicectl.config import CONFIG_ENV_VAR, default_config_path


def _write_config(directory: Path, data: dict, name: str = "service.json") -> Path:
    config_path = directory / name
    config_path.write_text(json.dumps(data), encoding="utf-8")
    return config_path


@pytest.fixture
def project_dir(tmp_path):
    """Project directory holding a script next to where the config goes."""
    (tmp_path / "app").mkdir()
    (tmp_path / "app" / "server.js").write_text("// entry point\n")
    return tmp_path


class TestLoadDescriptor:
    """Tests for a well-formed configuration file."""

    def test_full_configuration(self, project_dir):
        config_path = _write_config(project_dir, {
            "serviceName": "MyNodeApiService",
            "description": "Node.js API running as a service",
            "scriptPath": "app/server.js",
            "interpreter": sys.executable,
            "nodeOptions": ["--harmony", "--max_old_space_size=4096"],
            "args": ["--port", "8080"],
            "env": {"name": "NODE_ENV", "value": "production"},
            "retryStrategy": {"maxRetries": 3, "wait": 1, "grow": 0.5},
            "version": "1.0.0",
        })

        descriptor = load_descriptor(config_path)

        assert descriptor.name == "MyNodeApiService"
        assert descriptor.description == "Node.js API running as a service"
        assert descriptor.executable_path == (project_dir / "app" / "server.js").resolve()
        assert descriptor.interpreter == Path(sys.executable)
        assert descriptor.interpreter_options == ("--harmony", "--max_old_space_size=4096")
        assert descriptor.arguments == ("--port", "8080")
        assert dict(descriptor.environment) == {"NODE_ENV": "production"}
        assert descriptor.restart_policy == RestartPolicy(3, 1.0, 1.5)
        assert descriptor.version == Version("1.0.0")

    def test_defaults(self, project_dir):
        config_path = _write_config(project_dir, {"serviceName": "demo", "scriptPath": "app/server.js"})

        descriptor = load_descriptor(config_path)

        assert descriptor.interpreter is None
        assert descriptor.restart_policy == RestartPolicy()
        assert descriptor.log_directory == (project_dir / "logs").resolve()
        assert dict(descriptor.environment) == {}
        assert descriptor.version is None

    def test_script_path_relative_to_config_directory(self, project_dir, tmp_path_factory, monkeypatch):
        monkeypatch.chdir(tmp_path_factory.mktemp("elsewhere"))
        config_path = _write_config(project_dir, {"serviceName": "demo", "scriptPath": "app/server.js"})

        descriptor = load_descriptor(config_path)

        assert descriptor.executable_path == (project_dir / "app" / "server.js").resolve()

    def test_environment_forms(self, project_dir):
        config_path = _write_config(project_dir, {
            "serviceName": "demo",
            "scriptPath": "app/server.js",
            "env": [{"name": "NODE_ENV", "value": "production"}, {"name": "PORT", "value": 8080}],
        })

        assert dict(load_descriptor(config_path).environment) == {"NODE_ENV": "production", "PORT": "8080"}

    def test_explicit_backoff_settings(self, project_dir):
        config_path = _write_config(project_dir, {
            "serviceName": "demo",
            "scriptPath": "app/server.js",
            "logPath": "/var/log/demo",
            "retryStrategy": {"maxRetries": 5, "initialDelaySeconds": 2, "backoffMultiplier": 2},
        })

        descriptor = load_descriptor(config_path)

        assert descriptor.restart_policy == RestartPolicy(5, 2.0, 2.0)
        assert descriptor.log_directory == Path("/var/log/demo").resolve()

    def test_config_path_from_environment(self, project_dir, monkeypatch):
        config_path = _write_config(project_dir, {"serviceName": "demo", "scriptPath": "app/server.js"},
                                    name="custom.json")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(config_path))

        assert default_config_path() == config_path
        assert load_descriptor().name == "demo"

    def test_default_config_file_name(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        assert default_config_path() == Path("service.json")


class TestConfigurationErrors:
    """Tests for missing and malformed configuration."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationMissingError, match="Configuration file not found"):
            load_descriptor(tmp_path / "service.json")

    def test_missing_script(self, tmp_path):
        config_path = _write_config(tmp_path, {"serviceName": "demo", "scriptPath": "app.js"})

        with pytest.raises(ConfigurationMissingError, match="Cannot find script at"):
            load_descriptor(config_path)

    def test_missing_interpreter(self, project_dir):
        config_path = _write_config(project_dir, {
            "serviceName": "demo",
            "scriptPath": "app/server.js",
            "interpreter": str(project_dir / "bin" / "node"),
        })

        with pytest.raises(ConfigurationMissingError, match="Interpreter not found"):
            load_descriptor(config_path)

    def test_invalid_json(self, tmp_path):
        config_path = tmp_path / "service.json"
        config_path.write_text("{not json", encoding="utf-8")

        with pytest.raises(InvalidDescriptorError, match="Invalid JSON"):
            load_descriptor(config_path)

    @pytest.mark.parametrize("data", [
        [],
        {"scriptPath": "app/server.js"},
        {"serviceName": "demo"},
        {"serviceName": "demo", "scriptPath": "app/server.js", "env": "NODE_ENV=production"},
        {"serviceName": "demo", "scriptPath": "app/server.js", "args": "--port 8080"},
        {"serviceName": "demo", "scriptPath": "app/server.js", "retryStrategy": {"maxRetries": "many"}},
    ])
    def test_malformed_content(self, project_dir, data):
        config_path = _write_config(project_dir, data)

        with pytest.raises(InvalidDescriptorError):
            load_descriptor(config_path)

    def test_invalid_service_name(self, project_dir):
        config_path = _write_config(project_dir, {"serviceName": "../evil", "scriptPath": "app/server.js"})

        with pytest.raises(InvalidDescriptorError):
            load_descriptor(config_path)
