"""Rule construction: ``Equals(SettingReference, ConstantValue)`` fragments."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET

from .exceptions import SettingReferenceError
from .fragments import (
    RULES_NS,
    build_annotation,
    build_element,
    qname,
    scratch_roundtrip,
    xml_bool,
)
from .merger import ArtifactMerger
from .models import (
    RuleSpec,
    SettingReference,
    SettingSourceType,
    SourceArtifactIdentity,
    new_resource_id,
    new_rule_id,
)
from .normalize import RegistryDataType

logger = logging.getLogger(__name__)

_REMEDIABLE_REGISTRY_TYPES = frozenset(member.value for member in RegistryDataType)


class RuleBuilder:
    """Builds equality rules against settings of one source document."""

    def __init__(self, source: SourceArtifactIdentity) -> None:
        """Initialize builder for a source configuration item.

        Args:
            source: Identity of the document the referenced settings live in
        """
        self.source = source

    def build(
        self,
        reference: SettingReference,
        spec: RuleSpec,
        merger: ArtifactMerger | None = None,
        verify_setting: bool = False,
    ) -> ET.Element:
        """Build a rule asserting the referenced setting equals a constant.

        Args:
            reference: Setting the rule asserts on
            spec: Rule name, description, severity and compliant value
            merger: Document to verify the reference against
            verify_setting: Check the setting exists in ``merger``'s document

        Returns:
            Detached ``Rule`` element, ready to merge

        Raises:
            SettingReferenceError: If verification was requested and failed
        """
        if verify_setting:
            self._verify(reference, merger)

        if (
            reference.source_type is SettingSourceType.REGISTRY
            and reference.data_type not in _REMEDIABLE_REGISTRY_TYPES
        ):
            logger.warning(
                "Registry setting %s has data type %s; remediation of this type is "
                "not verified, a script setting is expected instead",
                reference.logical_name,
                reference.data_type,
            )

        rule = build_element(
            qname(RULES_NS, "Rule"),
            [
                ("id", new_rule_id()),
                ("Severity", spec.severity.value),
                ("NonCompliantWhenSettingIsNotFound", xml_bool(spec.noncompliant_when_not_found)),
            ],
        )
        build_annotation(rule, spec.name, spec.description, new_resource_id(), new_resource_id())

        expression = build_element(qname(RULES_NS, "Expression"), parent=rule)
        build_element(qname(RULES_NS, "Operator"), text="Equals", parent=expression)
        operands = build_element(qname(RULES_NS, "Operands"), parent=expression)
        build_element(
            qname(RULES_NS, "SettingReference"),
            [
                ("AuthoringScopeId", self.source.authoring_scope_id),
                ("LogicalName", self.source.logical_name),
                ("Version", self.source.version),
                ("DataType", reference.data_type),
                ("SettingLogicalName", reference.logical_name),
                ("SettingSourceType", reference.source_type.value),
                ("Method", "Value"),
                ("Changeable", xml_bool(spec.remediate)),
            ],
            parent=operands,
        )
        build_element(
            qname(RULES_NS, "ConstantValue"),
            [("Value", spec.compliant_value), ("DataType", reference.data_type)],
            parent=operands,
        )

        return scratch_roundtrip(rule)

    def _verify(self, reference: SettingReference, merger: ArtifactMerger | None) -> None:
        if merger is None:
            msg = "Setting verification requested without a document to verify against"
            raise SettingReferenceError(msg, details={"setting": reference.logical_name})
        if not merger.has_setting(reference.logical_name):
            msg = f"Setting {reference.logical_name} not found in {self.source}"
            raise SettingReferenceError(
                msg,
                details={"setting": reference.logical_name, "source": str(self.source)},
            )
