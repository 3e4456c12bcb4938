"""Tests for VBScript synthesis of registry enforcement scripts."""

import random

import pytest

from dcmkit.exceptions import InputValidationError
from dcmkit.models import RegistryValue, ScriptLanguage
from dcmkit.scripts import (
    COMPLIANT,
    LINE_BREAK,
    RegistryScriptSynthesizer,
    escape_vbs_string,
    unescape_vbs_string,
    vbs_array,
    vbs_dword,
    vbs_literal,
)


def _value(kind: str, data: object, hive: str = "HKLM", **kwargs: object) -> RegistryValue:
    return RegistryValue(
        hive=hive,
        key_path="Software\\Contoso\\Agent",
        value_name="Servers",
        value_data=data,
        value_kind=kind,
        **kwargs,
    )


class TestEscaping:
    """Test string literal escaping."""

    def test_quotes_are_doubled(self) -> None:
        assert escape_vbs_string('say "hi"') == 'say ""hi""'

    @pytest.mark.parametrize("newline", ["\r\n", "\n", "\r"])
    def test_line_endings_become_breaks(self, newline: str) -> None:
        assert escape_vbs_string(f"a{newline}b") == f"a{LINE_BREAK}b"

    def test_escaped_text_has_no_bare_quote(self) -> None:
        """Every quote in the output belongs to a doubled pair or a break."""
        escaped = escape_vbs_string('x"\n"y')
        stripped = escaped.replace(LINE_BREAK, "").replace('""', "")
        assert '"' not in stripped

    def test_adversarial_text_round_trips(self) -> None:
        """Text that looks like an escape sequence survives unchanged."""
        text = 'literal " & vbCrLf & " and ""doubled"" quotes'
        assert unescape_vbs_string(escape_vbs_string(text)) == text

    def test_round_trip_normalizes_line_endings(self) -> None:
        assert unescape_vbs_string(escape_vbs_string("a\nb\rc\r\nd")) == "a\r\nb\r\nc\r\nd"

    def test_random_text_round_trips(self) -> None:
        """Round trip is exact once line endings are CRLF."""
        rng = random.Random(20240611)
        alphabet = ['"', "\r\n", "\n", "\r", "&", " ", "v", "b", "C", "r", "L", "f", "x"]
        for _ in range(500):
            text = "".join(rng.choice(alphabet) for _ in range(rng.randint(0, 30)))
            expected = text.replace("\r\n", "\n").replace("\r", "\n").replace("\n", "\r\n")
            assert unescape_vbs_string(escape_vbs_string(text)) == expected

    def test_literal_and_array(self) -> None:
        assert vbs_literal('a"b') == '"a""b"'
        assert vbs_array(["one", "two"]) == 'Array("one", "two")'
        assert vbs_array([1, 255]) == "Array(1, 255)"


class TestSupports:
    """Test which values need a synthesized script."""

    def test_native_kinds_not_supported(self) -> None:
        synthesizer = RegistryScriptSynthesizer()
        assert not synthesizer.supports(_value("REG_SZ", "x"))
        assert not synthesizer.supports(_value("REG_QWORD", 5))

    def test_dword_depends_on_conversion(self) -> None:
        synthesizer = RegistryScriptSynthesizer()
        assert synthesizer.supports(_value("REG_DWORD", 5))
        assert not synthesizer.supports(_value("REG_DWORD", 5, convert_dword_to_qword=True))

    def test_synthesize_native_kind_rejected(self) -> None:
        with pytest.raises(InputValidationError, match="remediated natively"):
            RegistryScriptSynthesizer().synthesize(_value("REG_SZ", "x"))


class TestMultiStringScripts:
    """Test scripts for REG_MULTI_SZ values."""

    @pytest.fixture
    def scripts(self):
        return RegistryScriptSynthesizer().synthesize(_value("REG_MULTI_SZ", ["alpha", "beta"]))

    def test_metadata(self, scripts) -> None:
        assert scripts.language is ScriptLanguage.VBSCRIPT
        assert scripts.compliant_value == COMPLIANT

    def test_detection_reads_and_compares_arrays(self, scripts) -> None:
        detection = scripts.detection
        assert "Const HKEY_LOCAL_MACHINE = &H80000002" in detection
        assert 'expected = Array("alpha", "beta")' in detection
        assert "oRegistry.GetMultiStringValue HKEY_LOCAL_MACHINE, strKeyPath, strValueName, actual" in detection
        assert "UBound(actual) <> UBound(expected)" in detection
        assert detection.rstrip().endswith("WScript.Echo result")

    def test_detection_stops_at_first_mismatch(self, scripts) -> None:
        lines = [line.strip() for line in scripts.detection.splitlines()]
        mismatch = lines.index('result = "NonCompliant"', lines.index("For i = 0 To UBound(expected)"))
        assert lines[mismatch + 1] == "Exit For"

    def test_remediation_creates_key_then_sets(self, scripts) -> None:
        remediation = scripts.remediation
        create = remediation.index("oRegistry.CreateKey(HKEY_LOCAL_MACHINE, strKeyPath)")
        write = remediation.index("oRegistry.SetMultiStringValue(HKEY_LOCAL_MACHINE, strKeyPath, strValueName, expected)")
        assert create < write
        assert remediation.rstrip().endswith("WScript.Quit rc")

    def test_key_path_is_escaped(self, scripts) -> None:
        assert 'strKeyPath = "Software\\Contoso\\Agent"' in scripts.detection


class TestOtherKinds:
    """Test scripts for DWORD, expandable string and binary values."""

    def test_dword_single_value_comparison(self) -> None:
        scripts = RegistryScriptSynthesizer().synthesize(_value("REG_DWORD", "0x10"))
        assert "expected = 16" in scripts.detection
        assert "GetDWORDValue" in scripts.detection
        assert "ElseIf actual <> expected Then" in scripts.detection
        assert "For i" not in scripts.detection
        assert "SetDWORDValue" in scripts.remediation

    def test_high_dword_written_as_signed_long(self) -> None:
        scripts = RegistryScriptSynthesizer().synthesize(_value("REG_DWORD", 4294967295))
        assert "expected = -1" in scripts.detection
        assert "expected = -1" in scripts.remediation
        assert vbs_dword(0x7FFFFFFF) == "2147483647"
        assert vbs_dword(0x80000000) == "-2147483648"

    def test_expand_string_compares_expanded_form(self) -> None:
        scripts = RegistryScriptSynthesizer().synthesize(_value("REG_EXPAND_SZ", "%SystemRoot%\\Temp"))
        assert 'CreateObject("WScript.Shell")' in scripts.detection
        assert "actual <> oShell.ExpandEnvironmentStrings(expected)" in scripts.detection
        assert "SetExpandedStringValue" in scripts.remediation

    def test_binary_uses_numeric_array(self) -> None:
        scripts = RegistryScriptSynthesizer().synthesize(_value("REG_BINARY", "de ad"))
        assert "expected = Array(222, 173)" in scripts.detection
        assert "GetBinaryValue" in scripts.detection
        assert "SetBinaryValue" in scripts.remediation

    def test_current_user_hive_constant(self) -> None:
        scripts = RegistryScriptSynthesizer().synthesize(_value("REG_MULTI_SZ", ["a"], hive="HKCU"))
        assert "Const HKEY_CURRENT_USER = &H80000001" in scripts.detection

    def test_multiline_value_is_escaped(self) -> None:
        scripts = RegistryScriptSynthesizer().synthesize(_value("REG_EXPAND_SZ", 'one\n"two"'))
        assert f'expected = "one{LINE_BREAK}""two"""' in scripts.detection
