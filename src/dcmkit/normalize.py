"""Canonicalization of registry hive, data type and value kind spellings.

Callers may spell a hive as ``HKLM``, ``HKEY_LOCAL_MACHINE`` or
``LocalMachine``; the rest of the package only ever sees the canonical
enum member. Lookups are case-insensitive and the alias tables are closed:
anything not listed is rejected with :class:`InputValidationError`.
"""

from __future__ import annotations

from enum import Enum

from .exceptions import InputValidationError


class Hive(str, Enum):
    """Canonical registry hive names."""

    CLASSES_ROOT = "HKEY_CLASSES_ROOT"
    CURRENT_USER = "HKEY_CURRENT_USER"
    LOCAL_MACHINE = "HKEY_LOCAL_MACHINE"
    USERS = "HKEY_USERS"
    CURRENT_CONFIG = "HKEY_CURRENT_CONFIG"


class RegistryDataType(str, Enum):
    """Scalar data types a registry setting can declare natively."""

    STRING = "String"
    INT64 = "Int64"


class ValueKind(str, Enum):
    """Registry value kinds accepted by registry composition."""

    REG_SZ = "REG_SZ"
    REG_MULTI_SZ = "REG_MULTI_SZ"
    REG_EXPAND_SZ = "REG_EXPAND_SZ"
    REG_DWORD = "REG_DWORD"
    REG_QWORD = "REG_QWORD"
    REG_BINARY = "REG_BINARY"


HIVE_ALIASES: dict[str, Hive] = {
    "hkcr": Hive.CLASSES_ROOT,
    "hkey_classes_root": Hive.CLASSES_ROOT,
    "classesroot": Hive.CLASSES_ROOT,
    "hkcu": Hive.CURRENT_USER,
    "hkey_current_user": Hive.CURRENT_USER,
    "currentuser": Hive.CURRENT_USER,
    "hklm": Hive.LOCAL_MACHINE,
    "hkey_local_machine": Hive.LOCAL_MACHINE,
    "localmachine": Hive.LOCAL_MACHINE,
    "hku": Hive.USERS,
    "hkey_users": Hive.USERS,
    "users": Hive.USERS,
    "hkcc": Hive.CURRENT_CONFIG,
    "hkey_current_config": Hive.CURRENT_CONFIG,
    "currentconfig": Hive.CURRENT_CONFIG,
}

DATA_TYPE_ALIASES: dict[str, RegistryDataType] = {
    "reg_sz": RegistryDataType.STRING,
    "string": RegistryDataType.STRING,
    "reg_qword": RegistryDataType.INT64,
    "qword": RegistryDataType.INT64,
    "int64": RegistryDataType.INT64,
}

# .NET RegistryValueKind names are accepted alongside the REG_* tags
VALUE_KIND_ALIASES: dict[str, ValueKind] = {
    "reg_sz": ValueKind.REG_SZ,
    "string": ValueKind.REG_SZ,
    "reg_multi_sz": ValueKind.REG_MULTI_SZ,
    "multistring": ValueKind.REG_MULTI_SZ,
    "reg_expand_sz": ValueKind.REG_EXPAND_SZ,
    "expandstring": ValueKind.REG_EXPAND_SZ,
    "reg_dword": ValueKind.REG_DWORD,
    "dword": ValueKind.REG_DWORD,
    "reg_qword": ValueKind.REG_QWORD,
    "qword": ValueKind.REG_QWORD,
    "reg_binary": ValueKind.REG_BINARY,
    "binary": ValueKind.REG_BINARY,
}

# Value kinds a RegistrySetting can remediate without a script
NATIVE_VALUE_KINDS: dict[ValueKind, RegistryDataType] = {
    ValueKind.REG_SZ: RegistryDataType.STRING,
    ValueKind.REG_QWORD: RegistryDataType.INT64,
}


def _lookup(value: object, table: dict[str, Enum], label: str) -> Enum:
    if isinstance(value, Enum):
        value = value.value
    if not isinstance(value, str):
        msg = f"{label} must be a string, got {type(value).__name__}"
        raise InputValidationError(msg, details={"value": value})

    try:
        return table[value.strip().lower()]
    except KeyError:
        accepted = sorted({member.value for member in table.values()})
        msg = f"Unrecognized {label} '{value}'"
        raise InputValidationError(
            msg,
            details={"value": value, "accepted": accepted},
        ) from None


def normalize_hive(value: str | Hive) -> Hive:
    """Return the canonical hive for any accepted alias.

    Args:
        value: Hive spelling such as ``HKLM`` or ``LocalMachine``

    Returns:
        Canonical hive member

    Raises:
        InputValidationError: If the spelling is not a known alias
    """
    return _lookup(value, HIVE_ALIASES, "registry hive")  # type: ignore[return-value]


def normalize_data_type(value: str | RegistryDataType) -> RegistryDataType:
    """Return the canonical scalar data type (``String`` or ``Int64``)."""
    return _lookup(value, DATA_TYPE_ALIASES, "data type")  # type: ignore[return-value]


def normalize_value_kind(value: str | ValueKind) -> ValueKind:
    """Return the canonical ``REG_*`` value kind."""
    return _lookup(value, VALUE_KIND_ALIASES, "registry value kind")  # type: ignore[return-value]


def native_data_type(
    kind: ValueKind,
    convert_dword_to_qword: bool = False,
) -> RegistryDataType | None:
    """Map a value kind to the data type a RegistrySetting can remediate.

    Returns ``None`` when the kind needs a synthesized script instead.
    DWORD only maps to ``Int64`` when the caller opted into the conversion.
    """
    if kind is ValueKind.REG_DWORD and convert_dword_to_qword:
        return RegistryDataType.INT64
    return NATIVE_VALUE_KINDS.get(kind)
