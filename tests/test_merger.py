"""Tests for merging fragments into configuration item documents."""

import xml.etree.ElementTree as ET

import pytest

from dcmkit.exceptions import ArtifactStructureError
from dcmkit.fragments import DCM_NS, RULES_NS, build_element, local_name, parse_document, qname
from dcmkit.merger import ArtifactMerger, detect_flavor, source_identity_of
from dcmkit.models import Flavor


def _setting(logical_name: str) -> ET.Element:
    return build_element(qname(DCM_NS, "SimpleSetting"), [("LogicalName", logical_name), ("DataType", "String")])


def _rule(rule_id: str) -> ET.Element:
    return build_element(qname(RULES_NS, "Rule"), [("id", rule_id), ("Severity", "Warning")])


class TestDetectFlavor:
    """Test recognition of the configuration item element."""

    def test_operating_system(self, os_document: str) -> None:
        flavor, entity = detect_flavor(parse_document(os_document))
        assert flavor is Flavor.OPERATING_SYSTEM
        assert entity.get("LogicalName") == "OperatingSystem_0f3c2a61"

    def test_application(self, app_document: str) -> None:
        flavor, _ = detect_flavor(parse_document(app_document))
        assert flavor is Flavor.APPLICATION

    def test_root_is_item_element(self) -> None:
        root = parse_document(f'<Application xmlns="{DCM_NS}" LogicalName="A"><Settings/></Application>')
        flavor, entity = detect_flavor(root)
        assert flavor is Flavor.APPLICATION
        assert entity is root

    def test_unknown_flavor(self) -> None:
        root = parse_document(f'<DesiredConfigurationDigest xmlns="{DCM_NS}"><SoftwareUpdate/></DesiredConfigurationDigest>')
        with pytest.raises(ArtifactStructureError, match="found 0") as exc:
            detect_flavor(root)
        assert exc.value.details["found"] == []

    def test_ambiguous_flavor(self) -> None:
        root = parse_document(
            f'<DesiredConfigurationDigest xmlns="{DCM_NS}"><Application/><OperatingSystem/></DesiredConfigurationDigest>'
        )
        with pytest.raises(ArtifactStructureError, match="found 2"):
            detect_flavor(root)

    def test_wrong_namespace(self) -> None:
        root = parse_document("<DesiredConfigurationDigest><Application/></DesiredConfigurationDigest>")
        with pytest.raises(ArtifactStructureError):
            detect_flavor(root)


class TestSourceIdentity:
    """Test reading the identity of a document."""

    def test_identity(self, os_document: str, os_source_id: str) -> None:
        assert str(source_identity_of(parse_document(os_document))) == os_source_id

    def test_missing_attributes(self) -> None:
        root = parse_document(f'<DesiredConfigurationDigest xmlns="{DCM_NS}"><Application LogicalName="A"/></DesiredConfigurationDigest>')
        with pytest.raises(ArtifactStructureError, match="AuthoringScopeId, Version"):
            source_identity_of(root)


class TestAddSetting:
    """Test setting insertion."""

    def test_appended_to_first_group(self, os_document: str) -> None:
        merger = ArtifactMerger(parse_document(os_document))
        merger.add_setting(_setting("ScriptSetting_new"))
        group = merger.entity.find(qname(DCM_NS, "Settings"))[0]
        assert [child.get("LogicalName") for child in group] == ["RegistrySetting_existing", "ScriptSetting_new"]
        assert merger.has_setting("ScriptSetting_new")

    def test_fragment_is_copied(self, os_document: str) -> None:
        merger = ArtifactMerger(parse_document(os_document))
        fragment = _setting("ScriptSetting_new")
        imported = merger.add_setting(fragment)
        assert imported is not fragment
        fragment.set("LogicalName", "changed")
        assert merger.has_setting("ScriptSetting_new")

    def test_missing_settings_container(self) -> None:
        merger = ArtifactMerger(parse_document(f'<Application xmlns="{DCM_NS}"/>'))
        with pytest.raises(ArtifactStructureError, match="no Settings container"):
            merger.add_setting(_setting("ScriptSetting_new"))

    def test_empty_settings_container(self) -> None:
        merger = ArtifactMerger(parse_document(f'<Application xmlns="{DCM_NS}"><Settings/></Application>'))
        with pytest.raises(ArtifactStructureError, match="no grouping element"):
            merger.add_setting(_setting("ScriptSetting_new"))


class TestAddRule:
    """Test rule insertion."""

    def test_rules_container_created_once(self, os_document: str) -> None:
        merger = ArtifactMerger(parse_document(os_document))
        assert list(merger.iter_rules()) == []

        merger.add_rule(_rule("Rule_1"))
        merger.add_rule(_rule("Rule_2"))

        containers = merger.entity.findall(qname(DCM_NS, "Rules"))
        assert len(containers) == 1
        assert [rule.get("id") for rule in merger.iter_rules()] == ["Rule_1", "Rule_2"]

    def test_rules_container_follows_settings(self, os_document: str) -> None:
        merger = ArtifactMerger(parse_document(os_document))
        merger.add_rule(_rule("Rule_1"))
        order = [local_name(child.tag) for child in merger.entity]
        assert order.index("Rules") == order.index("Settings") + 1
        assert order[-1] == "OperatingSystemDiscoveryRule"

    def test_existing_rules_kept(self, app_document: str) -> None:
        merger = ArtifactMerger(parse_document(app_document))
        merger.add_rule(_rule("Rule_new"))
        assert [rule.get("id") for rule in merger.iter_rules()] == ["Rule_existing", "Rule_new"]

    def test_application_without_rules(self, app_document_no_rules: str) -> None:
        merger = ArtifactMerger(parse_document(app_document_no_rules))
        merger.add_rule(_rule("Rule_1"))
        order = [local_name(child.tag) for child in merger.entity]
        assert order == ["Settings", "Rules", "ApplicationDiscoveryRule"]
