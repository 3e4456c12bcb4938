"""Setting construction: models from caller input, XML fragments from models."""

from __future__ import annotations

import xml.etree.ElementTree as ET

from .fragments import (
    DCM_NS,
    build_annotation,
    build_element,
    qname,
    scratch_roundtrip,
    xml_bool,
)
from .models import (
    ComposerConfig,
    RegistrySetting,
    RegistryValue,
    ScriptRequest,
    ScriptSetting,
    Setting,
    new_resource_id,
)
from .normalize import RegistryDataType


def script_setting_from_request(
    request: ScriptRequest,
    config: ComposerConfig,
) -> ScriptSetting:
    """Build a script setting, filling unset options from configuration."""
    language = request.language or config.default_script_language
    return ScriptSetting(
        name=request.name,
        description=request.description,
        is_64bit=config.default_is_64bit if request.is_64bit is None else request.is_64bit,
        detection_script=request.detection_script,
        detection_language=language,
        remediation_script=request.remediation_script,
        remediation_language=language,
        run_as_user=request.run_as_user,
    )


def registry_setting_from_value(
    value: RegistryValue,
    data_type: RegistryDataType,
    config: ComposerConfig,
) -> RegistrySetting:
    """Build a registry setting for a natively remediable value."""
    return RegistrySetting(
        name=value.display_name,
        description=value.description,
        is_64bit=config.default_is_64bit if value.is_64bit is None else value.is_64bit,
        hive=value.hive,
        key_path=value.key_path,
        value_name=value.value_name,
        data_type=data_type,
    )


class SettingBuilder:
    """Serializes setting models into ``SimpleSetting`` fragments."""

    def build(self, setting: Setting) -> ET.Element:
        """Build the fragment for ``setting``.

        Args:
            setting: Script or registry setting

        Returns:
            Detached ``SimpleSetting`` element, ready to merge
        """
        element = build_element(
            qname(DCM_NS, "SimpleSetting"),
            [
                ("LogicalName", setting.logical_name),
                ("DataType", getattr(setting.data_type, "value", setting.data_type)),
            ],
        )
        build_annotation(
            element,
            setting.name,
            setting.description,
            new_resource_id(),
            new_resource_id(),
        )

        if isinstance(setting, ScriptSetting):
            self._script_source(element, setting)
        else:
            self._registry_source(element, setting)

        return scratch_roundtrip(element)

    def _script_source(self, parent: ET.Element, setting: ScriptSetting) -> None:
        source = build_element(
            qname(DCM_NS, "ScriptDiscoverySource"),
            [("Is64Bit", xml_bool(setting.is_64bit))],
            parent=parent,
        )
        build_element(
            qname(DCM_NS, "DiscoveryScriptBody"),
            [("ScriptType", setting.detection_language.value)],
            text=setting.detection_script,
            parent=source,
        )
        if setting.remediation_script:
            build_element(
                qname(DCM_NS, "RemediationScriptBody"),
                [("ScriptType", setting.remediation_language.value)],
                text=setting.remediation_script,
                parent=source,
            )
        build_element(
            qname(DCM_NS, "RunAsUser"),
            text=xml_bool(setting.run_as_user),
            parent=source,
        )

    def _registry_source(self, parent: ET.Element, setting: RegistrySetting) -> None:
        source = build_element(
            qname(DCM_NS, "RegistryDiscoverySource"),
            [
                ("Hive", setting.hive.value),
                ("Depth", "Base"),
                ("Is64Bit", xml_bool(setting.is_64bit)),
                ("CreateMissingPath", xml_bool(setting.create_missing_path)),
            ],
            parent=parent,
        )
        build_element(qname(DCM_NS, "Key"), text=setting.key_path, parent=source)
        build_element(qname(DCM_NS, "ValueName"), text=setting.value_name, parent=source)
