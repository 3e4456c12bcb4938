"""XML fragment construction and document (de)serialization.

Elements are built from ordered ``(name, value)`` attribute records so the
serialized attribute order is reproducible. Untrusted documents are parsed
with defusedxml; fragments are written to a scratch file and read back so
they carry their own namespace context when imported into a document.
"""

from __future__ import annotations

import logging
import re
import tempfile
import xml.etree.ElementTree as ET
from collections.abc import Sequence
from pathlib import Path

from defusedxml import ElementTree as DEFUSED_ET
from defusedxml.common import DefusedXmlException

from .exceptions import ArtifactStructureError, FragmentSpecError

logger = logging.getLogger(__name__)

DCM_NS = "http://schemas.microsoft.com/SystemsCenterConfigurationManager/2009/07/10/DesiredConfiguration"
RULES_NS = "http://schemas.microsoft.com/SystemsCenterConfigurationManager/2009/06/14/Rules"

ET.register_namespace("dcm", DCM_NS)
ET.register_namespace("rules", RULES_NS)

Attribute = tuple[str, str]

_XML_DECLARATION = re.compile(r"^\s*<\?xml\b[^?>]*\?>", re.IGNORECASE)
_ATTRIBUTE_NAME = re.compile(r"^[A-Za-z_][\w.-]*$")


def qname(namespace: str, local: str) -> str:
    """Clark notation name (``{namespace}local``)."""
    return f"{{{namespace}}}{local}"


def local_name(tag: str) -> str:
    """Strip the namespace part of a Clark notation tag."""
    return tag.rsplit("}", 1)[-1]


def xml_bool(value: bool) -> str:
    """Serialize a boolean the way the configuration schema expects."""
    return "true" if value else "false"


def _validated_attributes(tag: str, attributes: Sequence[Attribute]) -> list[Attribute]:
    records: list[Attribute] = []
    seen: set[str] = set()
    for index, record in enumerate(attributes):
        if not isinstance(record, (tuple, list)) or len(record) != 2:
            msg = f"Attribute #{index} of <{local_name(tag)}> must be a (name, value) pair"
            raise FragmentSpecError(msg, details={"tag": tag, "record": record})
        name, value = record
        if not isinstance(name, str) or not _ATTRIBUTE_NAME.match(name):
            msg = f"Invalid attribute name {name!r} on <{local_name(tag)}>"
            raise FragmentSpecError(msg, details={"tag": tag, "name": name})
        if not isinstance(value, str):
            msg = (
                f"Attribute '{name}' on <{local_name(tag)}> must be a string, "
                f"got {type(value).__name__}"
            )
            raise FragmentSpecError(msg, details={"tag": tag, "name": name})
        if name in seen:
            msg = f"Duplicate attribute '{name}' on <{local_name(tag)}>"
            raise FragmentSpecError(msg, details={"tag": tag, "name": name})
        seen.add(name)
        records.append((name, value))
    return records


def build_element(
    tag: str,
    attributes: Sequence[Attribute] = (),
    text: str | None = None,
    parent: ET.Element | None = None,
) -> ET.Element:
    """Create an element with attributes in the given order.

    Args:
        tag: Clark notation tag
        attributes: Ordered ``(name, value)`` records
        text: Optional element text
        parent: Attach the new element as the last child of this element

    Returns:
        The new element

    Raises:
        FragmentSpecError: If an attribute record is malformed
    """
    records = _validated_attributes(tag, attributes)
    if parent is None:
        element = ET.Element(tag)
    else:
        element = ET.SubElement(parent, tag)
    for name, value in records:
        element.set(name, value)
    if text is not None:
        element.text = text
    return element


def build_annotation(
    parent: ET.Element,
    display_name: str,
    description: str,
    display_resource_id: str,
    description_resource_id: str,
) -> ET.Element:
    """Append a rules-namespace ``Annotation`` block to ``parent``.

    The description carries a resource id only when its text is non-empty.
    """
    annotation = build_element(qname(RULES_NS, "Annotation"), parent=parent)
    build_element(
        qname(RULES_NS, "DisplayName"),
        [("Text", display_name), ("ResourceId", display_resource_id)],
        parent=annotation,
    )
    description_attributes: list[Attribute] = [("Text", description)]
    if description:
        description_attributes.append(("ResourceId", description_resource_id))
    build_element(qname(RULES_NS, "Description"), description_attributes, parent=annotation)
    return annotation


def _strip_declaration(text: str) -> str:
    return _XML_DECLARATION.sub("", text.lstrip("\ufeff"), count=1)


def parse_document(text: str) -> ET.Element:
    """Parse a configuration item document into a detached tree.

    Comments and processing instructions inside the root element are kept
    so they are written back unchanged.

    Raises:
        ArtifactStructureError: If the text is not well-formed or uses
            constructs defusedxml refuses (entity expansion, DTDs)
    """
    parser = DEFUSED_ET.XMLParser(target=ET.TreeBuilder(insert_comments=True, insert_pis=True))
    try:
        parser.feed(_strip_declaration(text))
        return parser.close()
    except (ET.ParseError, DefusedXmlException) as e:
        msg = f"Document is not well-formed XML: {e}"
        raise ArtifactStructureError(msg) from e


def serialize_document(root: ET.Element) -> str:
    """Serialize a document tree back to text.

    The configuration namespace is written as the default namespace unless
    the tree holds elements with no namespace. Those keep their empty
    namespace, so the configuration namespace falls back to its ``dcm:``
    prefix.
    """
    try:
        return ET.tostring(root, encoding="unicode", default_namespace=DCM_NS)
    except ValueError:
        logger.debug("Document has unqualified elements, writing %s with a prefix", DCM_NS)
        return ET.tostring(root, encoding="unicode")


def scratch_roundtrip(fragment: ET.Element) -> ET.Element:
    """Serialize a fragment to a scratch file and read it back.

    The scratch directory is removed on every exit path.
    """
    with tempfile.TemporaryDirectory(prefix="dcmkit-") as scratch:
        path = Path(scratch) / "fragment.xml"
        ET.ElementTree(fragment).write(path, encoding="utf-8", xml_declaration=True)
        try:
            return DEFUSED_ET.parse(path).getroot()
        except (ET.ParseError, DefusedXmlException) as e:
            msg = f"Fragment <{local_name(fragment.tag)}> did not survive serialization: {e}"
            raise FragmentSpecError(msg) from e
