"""Insertion of setting and rule fragments into configuration item documents."""

from __future__ import annotations

import copy
import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterator

from .exceptions import ArtifactStructureError
from .fragments import DCM_NS, RULES_NS, local_name, qname
from .models import Flavor, SourceArtifactIdentity

logger = logging.getLogger(__name__)

_FLAVOR_TAGS = {qname(DCM_NS, flavor.value): flavor for flavor in Flavor}


def detect_flavor(root: ET.Element) -> tuple[Flavor, ET.Element]:
    """Find the document's configuration item element and its flavor.

    The root itself may be the item element, otherwise exactly one of its
    children must be.

    Raises:
        ArtifactStructureError: If no, or more than one, item element exists
    """
    if root.tag in _FLAVOR_TAGS:
        return _FLAVOR_TAGS[root.tag], root

    candidates = [child for child in root if child.tag in _FLAVOR_TAGS]
    if len(candidates) != 1:
        found = sorted(local_name(child.tag) for child in candidates)
        msg = (
            "Document must contain exactly one OperatingSystem or Application "
            f"element, found {len(candidates)}"
        )
        raise ArtifactStructureError(
            msg,
            details={"root": local_name(root.tag), "found": found},
        )
    entity = candidates[0]
    return _FLAVOR_TAGS[entity.tag], entity


def source_identity_of(root: ET.Element) -> SourceArtifactIdentity:
    """Read the identity attributes of a document's item element."""
    _, entity = detect_flavor(root)
    attributes = {name: entity.get(name) for name in ("AuthoringScopeId", "LogicalName", "Version")}
    missing = [name for name, value in attributes.items() if not value]
    if missing:
        msg = f"Configuration item element lacks identity attributes: {', '.join(missing)}"
        raise ArtifactStructureError(msg, details={"missing": missing})
    return SourceArtifactIdentity(
        authoring_scope_id=attributes["AuthoringScopeId"],
        logical_name=attributes["LogicalName"],
        version=attributes["Version"],
    )


class ArtifactMerger:
    """Adds fragments to the flavor-specific containers of one document."""

    def __init__(self, root: ET.Element) -> None:
        """Bind the merger to a parsed document.

        Args:
            root: Document root; mutated in place by the add methods

        Raises:
            ArtifactStructureError: If the document flavor is not recognized
        """
        self.root = root
        self.flavor, self.entity = detect_flavor(root)

    def _settings_container(self) -> ET.Element:
        settings = self.entity.find(qname(DCM_NS, "Settings"))
        if settings is None:
            msg = f"{self.flavor.value} document has no Settings container"
            raise ArtifactStructureError(msg)
        return settings

    def _settings_group(self) -> ET.Element:
        settings = self._settings_container()
        if len(settings) == 0:
            msg = f"{self.flavor.value} Settings container has no grouping element"
            raise ArtifactStructureError(msg)
        return settings[0]

    def _rules_container(self, create: bool) -> ET.Element | None:
        rules = self.entity.find(qname(DCM_NS, "Rules"))
        if rules is None and create:
            rules = ET.Element(qname(DCM_NS, "Rules"))
            settings = self.entity.find(qname(DCM_NS, "Settings"))
            # schema order: Rules follows Settings
            index = list(self.entity).index(settings) + 1 if settings is not None else len(self.entity)
            self.entity.insert(index, rules)
            logger.debug("Created Rules container in %s document", self.flavor.value)
        return rules

    def add_setting(self, fragment: ET.Element) -> ET.Element:
        """Append a setting fragment to the first settings group.

        Returns:
            The element now owned by the document
        """
        group = self._settings_group()
        imported = copy.deepcopy(fragment)
        group.append(imported)
        logger.debug("Merged setting %s", imported.get("LogicalName"))
        return imported

    def add_rule(self, fragment: ET.Element) -> ET.Element:
        """Append a rule fragment, creating the Rules container if needed.

        Returns:
            The element now owned by the document
        """
        rules = self._rules_container(create=True)
        imported = copy.deepcopy(fragment)
        rules.append(imported)
        logger.debug("Merged rule %s", imported.get("id"))
        return imported

    def iter_settings(self) -> Iterator[ET.Element]:
        """Yield every element carrying a setting logical name."""
        settings = self.entity.find(qname(DCM_NS, "Settings"))
        if settings is None:
            return
        for element in settings.iter():
            if element is not settings and element.get("LogicalName"):
                yield element

    def iter_rules(self) -> Iterator[ET.Element]:
        """Yield the rules of the document in order."""
        rules = self._rules_container(create=False)
        if rules is None:
            return
        yield from rules.findall(qname(RULES_NS, "Rule"))

    def has_setting(self, logical_name: str) -> bool:
        """Whether a setting with ``logical_name`` exists in the document."""
        return any(element.get("LogicalName") == logical_name for element in self.iter_settings())
