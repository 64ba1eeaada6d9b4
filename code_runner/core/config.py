"""
Configuration management for code-runner.
"""

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError

MAX_TIMEOUT_MS = 60_000
MIN_TIMEOUT_MS = 100
MAX_MEMORY_MB = 512
MAX_CODE_LENGTH = 50_000
MAX_INPUT_LENGTH = 10_000
MAX_OUTPUT_BYTES = 10 * 1024 * 1024
MAX_OUTPUT_LINES = 10_000


@dataclass
class ExecutionConfig:
    """Request defaults and hard limits."""

    default_timeout_ms: int = 10_000
    default_memory_limit_mb: int = 128
    networking_enabled: bool = False
    max_code_length: int = MAX_CODE_LENGTH
    max_input_length: int = MAX_INPUT_LENGTH


@dataclass
class OutputConfig:
    """Output sanitizer ceilings."""

    max_bytes: int = MAX_OUTPUT_BYTES
    max_lines: int = MAX_OUTPUT_LINES


@dataclass
class SandboxConfig:
    """Language sandbox settings."""

    python_candidates: list[str] = field(
        default_factory=lambda: ["python3", "python", "/usr/bin/python3", "/usr/local/bin/python3"]
    )
    javascript_heap_limit_mb: int = 256
    timer_ceiling_ms: int = 1000


@dataclass
class RunnerConfig:
    """Main code-runner configuration."""

    debug: bool = False
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    sandbox: SandboxConfig = field(default_factory=SandboxConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "RunnerConfig":
        """Build configuration from a parsed mapping."""
        data = dict(data or {})
        try:
            for key, section in (
                ("execution", ExecutionConfig),
                ("output", OutputConfig),
                ("sandbox", SandboxConfig),
            ):
                section_data = data.get(key) or {}
                if not isinstance(section_data, dict):
                    raise ConfigurationError(f"Configuration section '{key}' must be a mapping")
                data[key] = section(**section_data)
            return cls(**data)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @classmethod
    def load_from_file(cls, config_path: Path) -> "RunnerConfig":
        """Load configuration from file."""
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, encoding="utf-8") as f:
                if config_path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load configuration: {e}")

        if data is not None and not isinstance(data, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")
        return cls.from_dict(data)

    def save_to_file(self, config_path: Path) -> None:
        """Save configuration to file."""
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(config_path, "w", encoding="utf-8") as f:
                if config_path.suffix.lower() == ".json":
                    json.dump(asdict(self), f, indent=2)
                else:
                    yaml.dump(asdict(self), f, default_flow_style=False, indent=2)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration: {e}")


def _env_flag(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


class ConfigManager:
    """Manages runner configuration."""

    CONFIG_FILENAME = "code_runner.yaml"

    def __init__(self, project_root: Path | None = None, environ: dict[str, str] | None = None):
        self.project_root = project_root or Path.cwd()
        self.config_path = self.project_root / self.CONFIG_FILENAME
        self._environ = environ if environ is not None else os.environ
        self._config: RunnerConfig | None = None

    @property
    def config(self) -> RunnerConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            self.load_config()
        return self._config

    def load_config(self) -> RunnerConfig:
        """Load configuration from file, then apply environment overrides."""
        if self.config_path.exists():
            self._config = RunnerConfig.load_from_file(self.config_path)
        else:
            self._config = RunnerConfig()

        self._apply_env_overrides(self._config)
        return self._config

    def save_config(self) -> None:
        """Save current configuration to file."""
        if self._config is None:
            raise ConfigurationError("No configuration to save")
        self._config.save_to_file(self.config_path)

    def _apply_env_overrides(self, config: RunnerConfig) -> None:
        """Apply DEBUG, MAX_EXECUTION_TIME, MAX_MEMORY_USAGE and ENABLE_NETWORKING."""
        env = self._environ

        if "DEBUG" in env:
            config.debug = _env_flag(env["DEBUG"])
        if "ENABLE_NETWORKING" in env:
            config.execution.networking_enabled = _env_flag(env["ENABLE_NETWORKING"])

        for name, attr in (
            ("MAX_EXECUTION_TIME", "default_timeout_ms"),
            ("MAX_MEMORY_USAGE", "default_memory_limit_mb"),
        ):
            raw = env.get(name)
            if raw is None or not raw.strip():
                continue
            try:
                setattr(config.execution, attr, int(raw))
            except ValueError:
                raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
