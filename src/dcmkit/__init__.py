"""dcmkit: Compliance setting and rule composition for configuration items."""

__version__ = "0.1.0"
__author__ = "dcmkit Contributors"
__description__ = "Compliance setting and rule composition for configuration items"

from .composer import (
    DirectMode,
    TransformMode,
    compose_registry_setting,
    compose_script_setting,
)
from .models import ComposerConfig, RegistryValue, ScriptRequest, Severity

__all__ = [
    "ComposerConfig",
    "DirectMode",
    "RegistryValue",
    "ScriptRequest",
    "Severity",
    "TransformMode",
    "compose_registry_setting",
    "compose_script_setting",
]
