"""Configuration loading with YAML parsing and validation."""

from pathlib import Path
from typing import Any

import pydantic_yaml

from .schema import PipelineConfig


def load_config(config_path: Path | str) -> PipelineConfig:
    """
    Load and validate pipeline configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated PipelineConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        pydantic.ValidationError: If config is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r") as f:
        yaml_content = f.read()

    return pydantic_yaml.parse_yaml_raw_as(PipelineConfig, yaml_content)


def load_config_with_overrides(
    config_path: Path | str,
    overrides: dict[str, Any],
) -> PipelineConfig:
    """
    Load config from YAML and apply dictionary overrides.

    Used by CLI flags that override config file values.

    Args:
        config_path: Path to YAML configuration file
        overrides: Values to override; dotted keys address nested
            settings (e.g. "classifier.seed")

    Returns:
        Validated PipelineConfig with overrides applied

    Raises:
        FileNotFoundError: If config file doesn't exist
        pydantic.ValidationError: If final config is invalid
    """
    config = load_config(config_path)
    config_dict = config.model_dump()

    for key, value in overrides.items():
        if "." in key:
            parts = key.split(".")
            target = config_dict
            for part in parts[:-1]:
                target = target[part]
            target[parts[-1]] = value
        else:
            config_dict[key] = value

    return PipelineConfig.model_validate(config_dict)
