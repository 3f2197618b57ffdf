"""Relationship manifest (``_rels/*.rels``) parsing and patching.

A manifest lists the outgoing references of one package part::

    <Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">
      <Relationship Id="rId1" Type=".../styles" Target="styles.xml"/>
    </Relationships>

Entries are only ever appended; existing elements are left exactly as parsed.
"""

import posixpath
from typing import NamedTuple

from lxml import etree

from docximg.exceptions import ManifestError

RELATIONSHIPS_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
IMAGE_RELTYPE = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/image"

_RELATIONSHIPS_TAG = f"{{{RELATIONSHIPS_NS}}}Relationships"
_RELATIONSHIP_TAG = f"{{{RELATIONSHIPS_NS}}}Relationship"


class RelationshipEntry(NamedTuple):
    id: str
    type: str
    target: str


def rels_part_name(part_name: str) -> str:
    """Return the manifest part name for a part, e.g. ``word/_rels/document.xml.rels``."""
    folder, filename = posixpath.split(part_name)
    return posixpath.join(folder, "_rels", f"{filename}.rels")


def serialize_xml(root) -> bytes:
    """Serialize an lxml element as a standalone OOXML part."""
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", standalone=True)


class RelationshipManifest:
    """Mutable view over a parsed relationship manifest."""

    def __init__(self, root):
        if root.tag != _RELATIONSHIPS_TAG:
            raise ManifestError(f"Unexpected manifest root element {root.tag!r}")
        self._root = root

    @classmethod
    def from_xml(cls, blob: bytes) -> "RelationshipManifest":
        try:
            root = etree.fromstring(blob)
        except (etree.XMLSyntaxError, ValueError) as exc:
            raise ManifestError(f"Cannot parse relationship manifest: {exc}") from exc
        return cls(root)

    @property
    def entries(self) -> list[RelationshipEntry]:
        return [
            RelationshipEntry(el.get("Id"), el.get("Type"), el.get("Target"))
            for el in self._root.iterchildren(_RELATIONSHIP_TAG)
        ]

    @property
    def ids(self) -> set[str]:
        return {el.get("Id") for el in self._root.iterchildren(_RELATIONSHIP_TAG)}

    def __contains__(self, rel_id: str) -> bool:
        return rel_id in self.ids

    def add(self, entry: RelationshipEntry) -> bool:
        """Append ``entry`` unless its id is already present.

        Returns ``True`` if an element was appended.
        """
        if entry.id in self:
            return False
        rel = etree.SubElement(self._root, _RELATIONSHIP_TAG)
        rel.set("Id", entry.id)
        rel.set("Type", entry.type)
        rel.set("Target", entry.target)
        return True

    def to_xml(self) -> bytes:
        return serialize_xml(self._root)
