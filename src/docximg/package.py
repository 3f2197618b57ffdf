"""In-memory access to the parts of an OOXML (.docx) package.

The package is read fully into memory when opened; parts are addressed by
their zip member name (``word/document.xml``, ``word/media/image1.png``).
Nothing is written to disk until :meth:`OpcPackage.save`.
"""

import io
import posixpath
import zipfile

from lxml import etree

from docximg.exceptions import InvalidTemplateError, PackageWriteError
from docximg.manifest import RelationshipManifest, rels_part_name, serialize_xml

CONTENT_TYPES_PART = "[Content_Types].xml"
CONTENT_TYPES_NS = "http://schemas.openxmlformats.org/package/2006/content-types"


class OpcPackage:
    """A ZIP container held as an ordered mapping of part name to bytes.

    Usage::

        pkg = OpcPackage.open("template.docx")
        xml = pkg.read_part("word/document.xml")
        pkg.write_part("word/document.xml", new_xml)
        pkg.save("output.docx")
    """

    def __init__(self, parts: dict[str, bytes] | None = None):
        self._parts: dict[str, bytes] = dict(parts or {})

    @classmethod
    def open(cls, source) -> "OpcPackage":
        """Load a package from a path or a binary file-like object."""
        try:
            with zipfile.ZipFile(source, "r") as zin:
                parts = {info.filename: zin.read(info) for info in zin.infolist() if not info.is_dir()}
        except (OSError, zipfile.BadZipFile) as exc:
            raise InvalidTemplateError(f"Cannot open package: {exc}") from exc
        return cls(parts)

    @property
    def part_names(self) -> list[str]:
        return list(self._parts)

    def has_part(self, name: str) -> bool:
        return name in self._parts

    def read_part(self, name: str) -> bytes:
        """Return the bytes of a part. Raises ``KeyError`` if it is missing."""
        return self._parts[name]

    def write_part(self, name: str, blob: bytes) -> None:
        """Create or replace a part."""
        _check_part_name(name)
        if not isinstance(blob, bytes):
            raise PackageWriteError(f"Part {name!r} must be bytes, got {type(blob).__name__}")
        self._parts[name] = blob

    def add_part(self, name: str, blob: bytes) -> None:
        """Create a new part. Existing parts are never overwritten."""
        if name in self._parts:
            raise PackageWriteError(f"Part {name!r} already exists in the package")
        self.write_part(name, blob)

    def relationships(self, part_name: str):
        """Return the relationship entries of ``part_name`` (empty if it has no manifest)."""
        rels_name = rels_part_name(part_name)
        if rels_name not in self._parts:
            return []
        return RelationshipManifest.from_xml(self._parts[rels_name]).entries

    def ensure_default_content_type(self, extension: str, content_type: str) -> None:
        """Register ``<Default Extension=... ContentType=...>`` if it is not declared yet."""
        try:
            root = etree.fromstring(self._parts[CONTENT_TYPES_PART])
        except (KeyError, etree.XMLSyntaxError) as exc:
            raise PackageWriteError(f"Package has no usable {CONTENT_TYPES_PART}: {exc}") from exc

        extension = extension.lower()
        for default in root.findall(f"{{{CONTENT_TYPES_NS}}}Default"):
            if (default.get("Extension") or "").lower() == extension:
                return

        default = etree.Element(f"{{{CONTENT_TYPES_NS}}}Default")
        default.set("Extension", extension)
        default.set("ContentType", content_type)
        # Defaults conventionally precede Overrides
        overrides = root.findall(f"{{{CONTENT_TYPES_NS}}}Override")
        if overrides:
            overrides[0].addprevious(default)
        else:
            root.append(default)
        self.write_part(CONTENT_TYPES_PART, serialize_xml(root))

    def to_bytes(self) -> bytes:
        buf = io.BytesIO()
        self.save(buf)
        return buf.getvalue()

    def save(self, target) -> None:
        """Write the package to a path or a binary file-like object."""
        with zipfile.ZipFile(target, "w", zipfile.ZIP_DEFLATED) as zout:
            # [Content_Types].xml goes first, as Office writes it
            if CONTENT_TYPES_PART in self._parts:
                zout.writestr(CONTENT_TYPES_PART, self._parts[CONTENT_TYPES_PART])
            for name, blob in self._parts.items():
                if name != CONTENT_TYPES_PART:
                    zout.writestr(name, blob)


def _check_part_name(name: str) -> None:
    if not name or name.startswith("/") or name.endswith("/"):
        raise PackageWriteError(f"Invalid part name {name!r}")
    if posixpath.normpath(name) != name or name.startswith(".."):
        raise PackageWriteError(f"Invalid part name {name!r}")
