"""Core data models for dcmkit compliance artifacts."""

from __future__ import annotations

import re
import uuid
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .exceptions import InputValidationError
from .normalize import (
    Hive,
    RegistryDataType,
    ValueKind,
    normalize_data_type,
    normalize_hive,
    normalize_value_kind,
)


class _CaseInsensitiveEnum(str, Enum):
    """Enum that accepts any casing of its values."""

    @classmethod
    def _missing_(cls, value: object) -> Any:
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        return None


class Severity(_CaseInsensitiveEnum):
    """Rule severity levels reported on non-compliance."""

    NONE = "None"
    WARNING = "Warning"
    CRITICAL = "Critical"
    CRITICAL_WITH_EVENT = "CriticalWithEvent"


class ScriptLanguage(_CaseInsensitiveEnum):
    """Script hosts a script setting can run under."""

    VBSCRIPT = "VBScript"
    POWERSHELL = "PowerShell"
    JSCRIPT = "JScript"


class Flavor(str, Enum):
    """Configuration item document shapes."""

    OPERATING_SYSTEM = "OperatingSystem"
    APPLICATION = "Application"


class SettingSourceType(str, Enum):
    """Discovery source a setting reads its value from."""

    SCRIPT = "Script"
    REGISTRY = "Registry"


def new_logical_name(kind: str) -> str:
    """Generate a setting logical name such as ``ScriptSetting_<uuid>``."""
    return f"{kind}Setting_{uuid.uuid4()}"


def new_rule_id() -> str:
    """Generate a rule identifier."""
    return f"Rule_{uuid.uuid4()}"


def new_resource_id() -> str:
    """Generate a localization resource identifier."""
    return f"ID-{uuid.uuid4()}"


def _canonical(normalizer: Any, value: Any) -> Any:
    try:
        return normalizer(value)
    except InputValidationError as e:
        raise ValueError(str(e)) from e


class SourceArtifactIdentity(BaseModel):
    """Identity of the configuration item a referenced setting lives in."""

    model_config = ConfigDict(frozen=True)

    authoring_scope_id: str
    logical_name: str
    version: str

    @classmethod
    def parse(cls, composite: str) -> SourceArtifactIdentity:
        """Split ``scope/logical-name/version`` into its three parts.

        Raises:
            InputValidationError: If the identifier does not have exactly
                three ``/``-separated components
        """
        parts = composite.split("/")
        if len(parts) != 3:
            msg = (
                "Composite identifier must be 'AuthoringScopeId/LogicalName/Version', "
                f"got '{composite}'"
            )
            raise InputValidationError(msg, details={"parts": len(parts)})
        scope, logical_name, version = parts
        return cls(authoring_scope_id=scope, logical_name=logical_name, version=version)

    def __str__(self) -> str:
        return f"{self.authoring_scope_id}/{self.logical_name}/{self.version}"


class _SettingBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_type: ClassVar[SettingSourceType]

    name: str = Field(..., min_length=1, description="Display name of the setting")
    description: str = Field(default="", description="Optional setting description")
    is_64bit: bool = Field(default=True, description="Evaluate in a 64-bit host")


class ScriptSetting(_SettingBase):
    """Setting whose value is the output of a detection script."""

    source_type: ClassVar[SettingSourceType] = SettingSourceType.SCRIPT
    data_type: ClassVar[str] = RegistryDataType.STRING.value

    logical_name: str = Field(default_factory=lambda: new_logical_name("Script"))
    detection_script: str = Field(..., description="Detection script source")
    detection_language: ScriptLanguage = ScriptLanguage.VBSCRIPT
    remediation_script: str = Field(default="", description="Remediation script source")
    remediation_language: ScriptLanguage = ScriptLanguage.VBSCRIPT
    run_as_user: bool = Field(
        default=False,
        description="Run the scripts with the logged on user's credentials",
    )


class RegistrySetting(_SettingBase):
    """Setting read from, and remediated into, a single registry value."""

    source_type: ClassVar[SettingSourceType] = SettingSourceType.REGISTRY

    logical_name: str = Field(default_factory=lambda: new_logical_name("Registry"))
    hive: Hive
    key_path: str = Field(..., min_length=1)
    value_name: str
    data_type: RegistryDataType
    create_missing_path: bool = True

    @field_validator("hive", mode="before")
    @classmethod
    def canonical_hive(cls, v: Any) -> Hive:
        """Accept any hive alias."""
        return _canonical(normalize_hive, v)

    @field_validator("data_type", mode="before")
    @classmethod
    def canonical_data_type(cls, v: Any) -> RegistryDataType:
        """Accept ``REG_SZ``/``REG_QWORD`` style spellings."""
        return _canonical(normalize_data_type, v)

    @field_validator("create_missing_path")
    @classmethod
    def always_create_path(cls, v: bool) -> bool:
        """Registry settings always create the key when remediating."""
        if not v:
            msg = "Registry settings always create missing keys"
            raise ValueError(msg)
        return v


Setting = Union[ScriptSetting, RegistrySetting]


class SettingReference(BaseModel):
    """What a rule needs to know about the setting it asserts on."""

    model_config = ConfigDict(frozen=True)

    logical_name: str
    source_type: SettingSourceType
    data_type: str

    @classmethod
    def for_setting(cls, setting: Setting) -> SettingReference:
        """Reference a setting built in this process."""
        data_type = setting.data_type
        return cls(
            logical_name=setting.logical_name,
            source_type=setting.source_type,
            data_type=getattr(data_type, "value", data_type),
        )


class RuleSpec(BaseModel):
    """Caller-facing attributes of an equality rule."""

    name: str = Field(..., min_length=1)
    description: str = ""
    compliant_value: str
    severity: Severity = Severity.WARNING
    remediate: bool = Field(default=True, description="Remediate non-compliant values")
    noncompliant_when_not_found: bool = True

    @field_validator("compliant_value", mode="before")
    @classmethod
    def stringify_value(cls, v: Any) -> str:
        """Constant values are serialized as text."""
        if isinstance(v, bool):
            return "true" if v else "false"
        return str(v)


_DWORD_MAX = 0xFFFFFFFF
_QWORD_MAX = 0xFFFFFFFFFFFFFFFF
_HEX_SEPARATORS = re.compile(r"[\s,:-]")


def _coerce_int(data: Any, upper: int, kind: ValueKind) -> int:
    if isinstance(data, bool):
        msg = f"{kind.value} value must be an integer"
        raise ValueError(msg)
    if isinstance(data, str):
        text = data.strip()
        try:
            data = int(text, 0) if text.lower().startswith("0x") else int(text)
        except ValueError:
            msg = f"{kind.value} value must be an integer, got '{data}'"
            raise ValueError(msg) from None
    if not isinstance(data, int):
        msg = f"{kind.value} value must be an integer"
        raise ValueError(msg)
    if not 0 <= data <= upper:
        msg = f"{kind.value} value {data} is out of range"
        raise ValueError(msg)
    return data


def _coerce_bytes(data: Any) -> list[int]:
    if isinstance(data, (bytes, bytearray)):
        return list(data)
    if isinstance(data, str):
        digits = _HEX_SEPARATORS.sub("", data)
        if digits.lower().startswith("0x"):
            digits = digits[2:]
        try:
            return list(bytes.fromhex(digits))
        except ValueError:
            msg = f"REG_BINARY value must be hex digits, got '{data}'"
            raise ValueError(msg) from None
    if isinstance(data, (list, tuple)):
        return [_coerce_int(item, 0xFF, ValueKind.REG_BINARY) for item in data]
    msg = "REG_BINARY value must be bytes, a hex string or a list of byte values"
    raise ValueError(msg)


def coerce_value_data(kind: ValueKind, data: Any) -> Any:
    """Bring raw value data into the Python shape its kind requires.

    Strings for ``REG_SZ``/``REG_EXPAND_SZ``, a list of strings for
    ``REG_MULTI_SZ``, an int for the numeric kinds and a list of byte values
    for ``REG_BINARY``.
    """
    if kind in (ValueKind.REG_SZ, ValueKind.REG_EXPAND_SZ):
        if isinstance(data, (list, tuple, dict)) or data is None:
            msg = f"{kind.value} value must be a single string"
            raise ValueError(msg)
        return str(data)
    if kind is ValueKind.REG_MULTI_SZ:
        if isinstance(data, str):
            return [data]
        if isinstance(data, (list, tuple)):
            return [str(item) for item in data]
        msg = "REG_MULTI_SZ value must be a string or a list of strings"
        raise ValueError(msg)
    if kind is ValueKind.REG_DWORD:
        return _coerce_int(data, _DWORD_MAX, kind)
    if kind is ValueKind.REG_QWORD:
        return _coerce_int(data, _QWORD_MAX, kind)
    return _coerce_bytes(data)


class RegistryValue(BaseModel):
    """One registry value to enforce, as accepted by registry composition."""

    hive: Hive
    key_path: str = Field(..., min_length=1, description="Key path below the hive")
    value_name: str = Field(..., description="Value name, empty for the default value")
    value_data: Any = Field(..., description="Compliant value data")
    value_kind: ValueKind = ValueKind.REG_SZ
    convert_dword_to_qword: bool = Field(
        default=False,
        description="Enforce REG_DWORD data as a natively remediated Int64 setting",
    )
    name: str | None = Field(default=None, description="Display name for setting and rule")
    description: str = ""
    severity: Severity | None = None
    remediate: bool = True
    noncompliant_when_not_found: bool = True
    is_64bit: bool | None = None

    @field_validator("hive", mode="before")
    @classmethod
    def canonical_hive(cls, v: Any) -> Hive:
        """Accept any hive alias."""
        return _canonical(normalize_hive, v)

    @field_validator("value_kind", mode="before")
    @classmethod
    def canonical_kind(cls, v: Any) -> ValueKind:
        """Accept ``REG_*`` tags and RegistryValueKind names."""
        return _canonical(normalize_value_kind, v)

    @model_validator(mode="after")
    def coerce_data(self) -> RegistryValue:
        """Shape ``value_data`` for the declared value kind."""
        self.value_data = coerce_value_data(self.value_kind, self.value_data)
        return self

    @property
    def display_name(self) -> str:
        """Name used for the setting and its rule."""
        if self.name:
            return self.name
        return f"{self.hive.value}\\{self.key_path}\\{self.value_name}"

    @property
    def per_user(self) -> bool:
        """Values under the current user hive run in the user's context."""
        return self.hive is Hive.CURRENT_USER


class ScriptRequest(BaseModel):
    """Input of script composition: a script pair and its compliant output."""

    name: str = Field(..., min_length=1)
    detection_script: str = Field(..., min_length=1)
    remediation_script: str = ""
    compliant_value: str
    language: ScriptLanguage | None = None
    run_as_user: bool = False
    is_64bit: bool | None = None
    description: str = ""
    severity: Severity | None = None
    remediate: bool = True
    noncompliant_when_not_found: bool = True


class ComposerConfig(BaseModel):
    """Defaults and site context threaded through every composition."""

    site_code: str | None = Field(
        default=None,
        description="Site code of the configuration management site",
    )
    store_root: Path | None = Field(
        default=None,
        description="Directory holding configuration item documents",
    )
    default_severity: Severity = Severity.WARNING
    default_is_64bit: bool = True
    default_script_language: ScriptLanguage = ScriptLanguage.VBSCRIPT
    verify_setting_references: bool = Field(
        default=False,
        description="Check referenced settings exist before adding a rule",
    )

    @field_validator("site_code")
    @classmethod
    def validate_site_code(cls, v: str | None) -> str | None:
        """Site codes are three alphanumeric characters."""
        if v is not None and not re.match(r"^[A-Za-z0-9]{3}$", v):
            msg = "Site code must be three letters or digits (e.g., PS1)"
            raise ValueError(msg)
        return v.upper() if v else v


class CompositionResult(BaseModel):
    """Outcome of a composite operation."""

    logical_names: list[str] = Field(default_factory=list)
    rule_ids: list[str] = Field(default_factory=list)
    document: str | None = Field(
        default=None,
        description="Updated document, only set in transform mode",
    )
