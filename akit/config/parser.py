"""Configuration file parsing utilities."""

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from akit.config.schemas import SettingsFile, VariantConfig

VARIANTS_FILE = "variants.json"
MANIFEST_TEMPLATE_FILE = "manifest-template.json"


class ConfigError(Exception):
    """Error loading or parsing configuration."""

    def __init__(self, message: str, path: Path | None = None):
        self.path = path
        super().__init__(message)


def load_json(path: Path) -> dict[str, Any]:
    """Load and parse a JSON file.

    Args:
        path: Path to the JSON file

    Returns:
        Parsed JSON as a dictionary

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    if not path.exists():
        raise ConfigError(f"File not found: {path}", path)

    try:
        with open(path, encoding="utf-8") as f:
            result = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}", path) from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}", path) from e

    if not isinstance(result, dict):
        raise ConfigError(f"JSON file must contain an object: {path}", path)
    return result


def dump_json(data: dict[str, Any], indent: int = 2) -> str:
    """Serialize data the way every akit JSON file is written."""
    return json.dumps(data, indent=indent, default=str) + "\n"


def load_yaml(path: Path) -> dict[str, Any]:
    """Load and parse a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Parsed YAML as a dictionary

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    if not path.exists():
        raise ConfigError(f"File not found: {path}", path)

    try:
        with open(path, encoding="utf-8") as f:
            result = yaml.safe_load(f)
            if result is None:
                return {}
            if not isinstance(result, dict):
                raise ConfigError(f"YAML file must contain a mapping: {path}", path)
            return result
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}", path) from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}", path) from e


def load_variant_config(package_dir: Path) -> VariantConfig:
    """Load variant definitions from a tool package's variants.json.

    Args:
        package_dir: Path to the tool's package directory

    Returns:
        Parsed VariantConfig

    Raises:
        ConfigError: If the file is missing or invalid
    """
    config_path = package_dir / VARIANTS_FILE
    data = load_json(config_path)

    try:
        return VariantConfig.model_validate({"variants": data})
    except ValidationError as e:
        raise ConfigError(f"Invalid variant config: {e}", config_path) from e


def load_manifest_template(package_dir: Path) -> dict[str, Any]:
    """Load a tool package's optional manifest template.

    Args:
        package_dir: Path to the tool's package directory

    Returns:
        Template fields, or an empty dict if the package has none

    Raises:
        ConfigError: If the template exists but is invalid
    """
    template_path = package_dir / MANIFEST_TEMPLATE_FILE
    if not template_path.exists():
        return {}
    return load_json(template_path)


def load_settings_file(path: Path) -> SettingsFile | None:
    """Load the user settings file if it exists.

    Args:
        path: Path to config.yaml

    Returns:
        Parsed SettingsFile, or None if the file doesn't exist

    Raises:
        ConfigError: If the file exists but is invalid
    """
    if not path.exists():
        return None

    data = load_yaml(path)

    try:
        return SettingsFile.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings file: {e}", path) from e
