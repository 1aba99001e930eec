"""
minutesgen.config - YAML config loading and validation.

Handles loading config.yaml from the per-user minutesgen directory (or an
explicit path), applying defaults, and validating all parameters.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from minutesgen.exceptions import ConfigError

APP_DIR_NAME = ".minutesgen"
TEMP_DIR_NAME = "minutes-gen-audio"
CONFIG_FILE_NAME = "config.yaml"

DEFAULT_CHUNK_SIZE = 50 * 1024 * 1024
DEFAULT_SEGMENT_DURATION = 600


def default_app_dir() -> Path:
    return Path.home() / APP_DIR_NAME


def default_temp_dir() -> Path:
    return Path(tempfile.gettempdir()) / TEMP_DIR_NAME


class MinutesGenConfig(BaseModel):
    """Resolved configuration for the audio preparation core."""

    bin_dir: Path = Field(default_factory=lambda: default_app_dir() / "bin")
    safe_exec_dir: Path = Field(default_factory=lambda: default_app_dir() / "exec")
    temp_dir: Path = Field(default_factory=default_temp_dir)

    resources_dir: Path | None = None
    extra_search_dirs: list[Path] = Field(default_factory=list)
    search_system_path: bool = True

    chunk_size_bytes: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0)
    segment_duration_seconds: float = Field(default=DEFAULT_SEGMENT_DURATION, gt=0.0)
    sample_rate: int = Field(default=44100, gt=0)
    channels: int = Field(default=1, ge=1, le=2)
    max_workers: int = Field(default=1, ge=1)

    verify_timeout: float = Field(default=10.0, gt=0.0)
    probe_timeout: float = Field(default=30.0, gt=0.0)
    decode_timeout: float = Field(default=600.0, gt=0.0)

    progress_buffer_size: int = Field(default=256, ge=1)

    @field_validator("sample_rate")
    @classmethod
    def validate_sample_rate(cls, v: int) -> int:
        valid = {8000, 16000, 22050, 24000, 32000, 44100, 48000}
        if v not in valid:
            raise ValueError(f"sample_rate must be one of: {sorted(valid)}")
        return v

    @field_validator("bin_dir", "safe_exec_dir", "temp_dir")
    @classmethod
    def expand_dir(cls, v: Path) -> Path:
        return Path(v).expanduser()


def default_config_path() -> Path:
    return default_app_dir() / CONFIG_FILE_NAME


def load_config(config_file: Path | None = None) -> MinutesGenConfig:
    """Load and validate configuration.

    Args:
        config_file: Explicit YAML file. When None, the per-user config is
            used if present, otherwise built-in defaults.

    Raises:
        FileNotFoundError: If an explicit config_file does not exist
        ConfigError: If the YAML is malformed or fails validation
    """
    if config_file is None:
        config_file = default_config_path()
        if not config_file.exists():
            return MinutesGenConfig()
    elif not config_file.exists():
        raise FileNotFoundError(f"No config file found at {config_file}")

    try:
        with open(config_file) as f:
            raw_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_file}: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError(f"{config_file} must contain a mapping")

    try:
        return MinutesGenConfig(**raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_file}: {e}") from e


def config_to_dict(config: MinutesGenConfig) -> dict[str, Any]:
    """Dump a config model to plain YAML-friendly types."""
    return config.model_dump(mode="json")


def write_config(config: MinutesGenConfig | dict[str, Any], path: Path) -> None:
    """Write configuration to a YAML file."""
    if isinstance(config, MinutesGenConfig):
        config = config_to_dict(config)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)
