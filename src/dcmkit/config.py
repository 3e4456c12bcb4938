"""Composer configuration loader with schema validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import jsonschema
import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import ComposerConfig

CONFIG_DIR = ".dcmkit"
CONFIG_FILE = "config.yaml"

CONFIG_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "dcmkit composer configuration",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "site_code": {"type": ["string", "null"]},
        "store_root": {"type": ["string", "null"]},
        "default_severity": {
            "type": "string",
            "description": "None, Warning, Critical or CriticalWithEvent",
        },
        "default_is_64bit": {"type": "boolean"},
        "default_script_language": {"type": "string"},
        "verify_setting_references": {"type": "boolean"},
    },
}

STARTER_CONFIG = """\
# dcmkit composer configuration
# =============================
# site_code is required for direct mode (commits to the store).
site_code: "{site_code}"

# Directory holding one <LogicalName>.xml file per configuration item,
# relative to this file.
store_root: store

# Defaults applied when a composition does not set them explicitly.
default_severity: Warning            # None | Warning | Critical | CriticalWithEvent
default_is_64bit: true
default_script_language: VBScript    # VBScript | PowerShell | JScript

# Check that a rule's setting exists in the document before adding the rule.
verify_setting_references: false
"""


def load_config(config_path: Path, validate: bool = True) -> ComposerConfig:
    """Load and validate a composer configuration file.

    Args:
        config_path: Path to the YAML configuration
        validate: Whether to perform schema validation

    Returns:
        Validated configuration; ``store_root`` resolved against the
        configuration file's directory

    Raises:
        ConfigError: If the file cannot be read, parsed or validated
    """
    config_path = Path(config_path)
    if not config_path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise ConfigError(msg)

    try:
        with config_path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        msg = f"Failed to parse configuration YAML: {e}"
        raise ConfigError(msg) from e
    except OSError as e:
        msg = f"Failed to read configuration file: {e}"
        raise ConfigError(msg) from e

    data = data or {}
    if validate:
        try:
            jsonschema.validate(data, CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            msg = f"Schema validation failed: {e.message}"
            raise ConfigError(
                msg,
                details={"path": list(e.absolute_path), "file": str(config_path)},
            ) from e

    try:
        config = ComposerConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Configuration validation failed: {e}"
        raise ConfigError(msg) from e

    if config.store_root is not None and not config.store_root.is_absolute():
        config = config.model_copy(
            update={"store_root": (config_path.parent / config.store_root).resolve()},
        )
    return config


def discover_config(start: Path | None = None) -> Path | None:
    """Find ``.dcmkit/config.yaml`` in ``start`` or one of its parents.

    Returns:
        Path to the discovered configuration or None if not found
    """
    current = Path(start or Path.cwd()).resolve()

    while True:
        candidate = current / CONFIG_DIR / CONFIG_FILE
        if candidate.is_file():
            return candidate
        if current == current.parent:
            return None
        current = current.parent
