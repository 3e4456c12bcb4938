"""VBScript synthesis for registry values without native remediation.

Configuration item registry settings can only remediate ``String`` and
``Int64`` values. Multi-string, expandable string, DWORD and binary values
are enforced through a generated detection/remediation script pair that
talks to the WMI ``StdRegProv`` provider. Detection echoes ``Compliant`` or
``NonCompliant``; remediation exits with the provider's return code.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from .exceptions import InputValidationError
from .models import RegistryValue, ScriptLanguage
from .normalize import Hive, ValueKind

COMPLIANT = "Compliant"
NON_COMPLIANT = "NonCompliant"

LINE_BREAK = '" & vbCrLf & "'

_UNESCAPE = re.compile(r'""|' + re.escape(LINE_BREAK))

HIVE_CONSTANTS: dict[Hive, str] = {
    Hive.CLASSES_ROOT: "&H80000000",
    Hive.CURRENT_USER: "&H80000001",
    Hive.LOCAL_MACHINE: "&H80000002",
    Hive.USERS: "&H80000003",
    Hive.CURRENT_CONFIG: "&H80000005",
}

# (getter, setter) StdRegProv methods per value kind
_PROVIDER_METHODS: dict[ValueKind, tuple[str, str]] = {
    ValueKind.REG_MULTI_SZ: ("GetMultiStringValue", "SetMultiStringValue"),
    ValueKind.REG_EXPAND_SZ: ("GetExpandedStringValue", "SetExpandedStringValue"),
    ValueKind.REG_DWORD: ("GetDWORDValue", "SetDWORDValue"),
    ValueKind.REG_BINARY: ("GetBinaryValue", "SetBinaryValue"),
}

ARRAY_KINDS = frozenset({ValueKind.REG_MULTI_SZ, ValueKind.REG_BINARY})

_PROVIDER_MONIKER = "winmgmts:{impersonationLevel=impersonate}!\\\\.\\root\\default:StdRegProv"


def escape_vbs_string(text: str) -> str:
    """Escape text for use inside a VBScript string literal.

    Quotes are doubled and every line ending (``\\r\\n``, ``\\r`` or ``\\n``)
    becomes a ``vbCrLf`` concatenation break.
    """
    text = text.replace('"', '""')
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return text.replace("\n", LINE_BREAK)


def unescape_vbs_string(escaped: str) -> str:
    """Inverse of :func:`escape_vbs_string`; line endings come back as CRLF."""

    def _replace(match: re.Match[str]) -> str:
        return '"' if match.group(0) == '""' else "\r\n"

    return _UNESCAPE.sub(_replace, escaped)


def vbs_literal(text: str) -> str:
    """Quoted VBScript string literal for ``text``."""
    return f'"{escape_vbs_string(text)}"'


def vbs_dword(data: int) -> str:
    """VBScript numeric literal for a DWORD as StdRegProv reads it back.

    DWORDs surface in VBScript as signed Longs, so data at or above
    0x80000000 is written as its negative two's complement value.
    """
    if data >= 0x80000000:
        data -= 0x100000000
    return str(data)


def vbs_array(items: Sequence[str | int]) -> str:
    """VBScript ``Array(...)`` expression preserving item order."""
    rendered = [vbs_literal(item) if isinstance(item, str) else str(item) for item in items]
    return f"Array({', '.join(rendered)})"


@dataclass(frozen=True)
class SynthesizedScripts:
    """Detection and remediation source for one registry value."""

    detection: str
    remediation: str
    language: ScriptLanguage = ScriptLanguage.VBSCRIPT
    compliant_value: str = COMPLIANT


class RegistryScriptSynthesizer:
    """Generates StdRegProv scripts enforcing a registry value."""

    def supports(self, value: RegistryValue) -> bool:
        """Whether ``value`` needs a synthesized script."""
        if value.value_kind is ValueKind.REG_DWORD and value.convert_dword_to_qword:
            return False
        return value.value_kind in _PROVIDER_METHODS

    def synthesize(self, value: RegistryValue) -> SynthesizedScripts:
        """Build the detection/remediation pair for ``value``.

        Raises:
            InputValidationError: If the value kind is remediated natively
        """
        if not self.supports(value):
            msg = f"{value.value_kind.value} values are remediated natively, not by script"
            raise InputValidationError(msg, details={"value_kind": value.value_kind.value})

        return SynthesizedScripts(
            detection=self._detection_script(value),
            remediation=self._remediation_script(value),
        )

    def _expected_expression(self, value: RegistryValue) -> str:
        if value.value_kind in ARRAY_KINDS:
            return vbs_array(value.value_data)
        if value.value_kind is ValueKind.REG_DWORD:
            return vbs_dword(value.value_data)
        return vbs_literal(value.value_data)

    def _preamble(self, value: RegistryValue, extra_dims: Sequence[str]) -> list[str]:
        hive = value.hive.value
        dims = ["oRegistry", "strKeyPath", "strValueName", "expected", *extra_dims]
        return [
            "Option Explicit",
            f"Const {hive} = {HIVE_CONSTANTS[value.hive]}",
            f"Dim {', '.join(dims)}",
            f'Set oRegistry = GetObject("{_PROVIDER_MONIKER}")',
            f"strKeyPath = {vbs_literal(value.key_path)}",
            f"strValueName = {vbs_literal(value.value_name)}",
            f"expected = {self._expected_expression(value)}",
        ]

    def _detection_script(self, value: RegistryValue) -> str:
        getter, _ = _PROVIDER_METHODS[value.value_kind]
        hive = value.hive.value
        is_array = value.value_kind in ARRAY_KINDS
        extra = ["actual", "result"] + (["i"] if is_array else [])
        if value.value_kind is ValueKind.REG_EXPAND_SZ:
            extra.append("oShell")

        lines = self._preamble(value, extra)
        lines.append(f"oRegistry.{getter} {hive}, strKeyPath, strValueName, actual")
        lines.append(f'result = "{COMPLIANT}"')

        if is_array:
            lines.extend([
                "If IsNull(actual) Then",
                f'    result = "{NON_COMPLIANT}"',
                "ElseIf UBound(actual) <> UBound(expected) Then",
                f'    result = "{NON_COMPLIANT}"',
                "Else",
                "    For i = 0 To UBound(expected)",
                "        If actual(i) <> expected(i) Then",
                f'            result = "{NON_COMPLIANT}"',
                "            Exit For",
                "        End If",
                "    Next",
                "End If",
            ])
        else:
            comparand = "expected"
            if value.value_kind is ValueKind.REG_EXPAND_SZ:
                # the provider hands back the expanded form
                lines.append('Set oShell = CreateObject("WScript.Shell")')
                comparand = "oShell.ExpandEnvironmentStrings(expected)"
            lines.extend([
                "If IsNull(actual) Then",
                f'    result = "{NON_COMPLIANT}"',
                f"ElseIf actual <> {comparand} Then",
                f'    result = "{NON_COMPLIANT}"',
                "End If",
            ])

        lines.append("WScript.Echo result")
        return "\n".join(lines)

    def _remediation_script(self, value: RegistryValue) -> str:
        _, setter = _PROVIDER_METHODS[value.value_kind]
        hive = value.hive.value

        lines = self._preamble(value, ["subKeys", "rc"])
        lines.extend([
            f"If oRegistry.EnumKey({hive}, strKeyPath, subKeys) <> 0 Then",
            f"    rc = oRegistry.CreateKey({hive}, strKeyPath)",
            "    If rc <> 0 Then WScript.Quit rc",
            "End If",
            f"rc = oRegistry.{setter}({hive}, strKeyPath, strValueName, expected)",
            "WScript.Quit rc",
        ])
        return "\n".join(lines)
