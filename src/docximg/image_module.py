"""Image placeholder extension for DocxTemplate.

Replaces ``{{%name}}`` placeholders with inline pictures. The value bound to
``name`` in the render context must be the encoded image as bytes (a PNG
chart, for instance)::

    module = ImageModule(size_of=fit_within(600))
    tpl = DocxTemplate("report.docx", modules=[module])
    tpl.render({"chart": png_bytes})

Every failure to produce a picture (unbound name, non-bytes value, degenerate
size, broken manifest) renders as an empty run and is logged. Only
:class:`~docximg.exceptions.PackageWriteError` escapes, since the package
itself is then unusable.
"""

import inspect
import logging
import posixpath
import re
from typing import Any, Callable, NamedTuple

from jinja2 import Undefined
from jinja2.utils import missing

from docximg.exceptions import ManifestError, PackageWriteError
from docximg.ids import IdAllocator
from docximg.imaging import CONTENT_TYPES, sniff_format
from docximg.manifest import IMAGE_RELTYPE, RelationshipEntry, RelationshipManifest, rels_part_name
from docximg.markup import inline_image_xml, px_to_emu

logger = logging.getLogger(__name__)

DEFAULT_SIZE = (600, 400)

_DOCPR_ID_RE = re.compile(rb"<wp:docPr\b[^>]*?\bid=\"(\d+)\"")
_MISSING = object()


class Placeholder(NamedTuple):
    name: str
    module: str


class HostServices(NamedTuple):
    """What the host engine hands to a module before rendering a part."""

    package: Any
    part_name: str


class ResolvedImage(NamedTuple):
    data: bytes
    width: int
    height: int
    format: str


class Unresolved(NamedTuple):
    """A placeholder that renders as nothing, with the reason why."""

    reason: str


class ImageModule:
    """Host extension that renders image placeholders as inline pictures.

    Args:
        transform: Optional ``bytes -> bytes`` callable applied to the bound
            value before embedding (e.g. :func:`docximg.imaging.to_png`).
        size_of: Optional ``bytes -> (width, height)`` callable returning
            pixels. Without it every picture gets ``default_size``.
            Both callables also receive the placeholder name when they take
            a second positional argument, so one module can treat charts
            differently by name.
        default_size: Pixel size used when ``size_of`` is not given.
        min_size: Pictures with a side less than or equal to this many pixels
            are suppressed.
        marker: Leading character that marks a tag as an image placeholder.
    """

    name = "ImageModule"

    def __init__(
        self,
        transform: Callable[..., bytes] | None = None,
        size_of: Callable[..., tuple[int, int]] | None = None,
        default_size: tuple[int, int] = DEFAULT_SIZE,
        min_size: int = 1,
        marker: str = "%",
    ):
        self.transform = transform
        self.size_of = size_of
        self.default_size = default_size
        self.min_size = min_size
        self.marker = marker
        self._services: HostServices | None = None
        self._ids: IdAllocator | None = None

    # -- host contract -------------------------------------------------

    def recognize(self, token: str) -> Placeholder | None:
        """Claim ``token`` (the text between ``{{`` and ``}}``) if it carries the marker."""
        token = token.strip()
        if not token.startswith(self.marker):
            return None
        name = token[len(self.marker):].strip()
        if not name:
            return None
        return Placeholder(name, self.name)

    def configure(self, services: HostServices) -> None:
        """Bind the module to the package part about to be rendered.

        Replaces whatever a previous call bound, and re-seeds the identifier
        allocator from the package as it is now.
        """
        self._services = services
        self._ids = IdAllocator.from_existing(_existing_identifiers(services.package, services.part_name))

    def render(self, placeholder: Placeholder, context) -> str:
        if placeholder.module != self.name:
            return ""

        image = self.resolve(placeholder.name, context)
        if isinstance(image, Unresolved):
            logger.warning("Image placeholder %r left empty: %s", placeholder.name, image.reason)
            return ""

        entry = self.register_image(image)
        if isinstance(entry, Unresolved):
            logger.warning("Image placeholder %r left empty: %s", placeholder.name, entry.reason)
            return ""

        docpr_id = int(entry.id[len("rId"):])
        return inline_image_xml(
            entry.id,
            px_to_emu(image.width),
            px_to_emu(image.height),
            name=placeholder.name,
            docpr_id=docpr_id,
        )

    # -- pipeline --------------------------------------------------------

    def resolve(self, name: str, context) -> ResolvedImage | Unresolved:
        """Turn a placeholder name into embeddable bytes and a pixel size."""
        try:
            value = lookup(context, name)
        except Exception as exc:
            return Unresolved(f"lookup failed: {exc}")
        if value is _MISSING:
            return Unresolved("name is not bound in the context")
        if not isinstance(value, (bytes, bytearray, memoryview)):
            return Unresolved(f"expected bytes, got {type(value).__name__}")
        data = bytes(value)

        if self.transform is not None:
            try:
                data = _call_with_name(self.transform, data, name)
            except Exception as exc:
                return Unresolved(f"transform failed: {exc}")
            if not isinstance(data, (bytes, bytearray)):
                return Unresolved(f"transform returned {type(data).__name__}, not bytes")
            data = bytes(data)
        if not data:
            return Unresolved("image data is empty")

        fmt = sniff_format(data)
        if fmt is None:
            return Unresolved("image data is not a recognised raster format")
        if fmt not in CONTENT_TYPES:
            return Unresolved(f"image format {fmt} cannot be embedded")

        if self.size_of is None:
            size = self.default_size
        else:
            try:
                size = _call_with_name(self.size_of, data, name)
            except Exception as exc:
                return Unresolved(f"size_of failed: {exc}")
        try:
            width, height = size
            width, height = int(width), int(height)
        except (TypeError, ValueError, OverflowError):
            return Unresolved(f"invalid size {size!r}")

        if min(width, height) <= self.min_size or min(px_to_emu(width), px_to_emu(height)) <= 0:
            return Unresolved(f"degenerate size {width}x{height}")
        return ResolvedImage(data, width, height, fmt)

    def register_image(self, image: ResolvedImage) -> RelationshipEntry | Unresolved:
        """Embed ``image`` in the package and reference it from the current part."""
        if self._services is None:
            raise PackageWriteError("ImageModule.render called before configure()")
        package, part_name = self._services

        rels_name = rels_part_name(part_name)
        try:
            manifest = RelationshipManifest.from_xml(package.read_part(rels_name))
        except KeyError:
            return Unresolved(f"relationship manifest {rels_name} is missing")
        except ManifestError as exc:
            return Unresolved(str(exc))

        extension, content_type = CONTENT_TYPES[image.format]
        n = self._ids.next()
        rel_id = f"rId{n}"
        target = f"media/image{n}.{extension}"
        media_part = posixpath.join(posixpath.dirname(part_name), target)

        package.add_part(media_part, image.data)
        package.ensure_default_content_type(extension, content_type)

        entry = RelationshipEntry(rel_id, IMAGE_RELTYPE, target)
        manifest.add(entry)
        package.write_part(rels_name, manifest.to_xml())
        logger.debug("Embedded %s as %s (%dx%d px)", media_part, rel_id, image.width, image.height)
        return entry


def lookup(context, name: str):
    """Resolve a dotted ``name`` in a Jinja2 context or a plain mapping.

    Returns the ``_MISSING`` sentinel for unbound names and for Jinja2
    ``Undefined`` results.
    """
    head, *rest = name.split(".")
    if hasattr(context, "resolve_or_missing"):
        value = context.resolve_or_missing(head)
        if value is missing:
            return _MISSING
        getattr_ = context.environment.getattr
    else:
        value = context.get(head, _MISSING)
        getattr_ = _getattr_or_item
    for attr in rest:
        if value is _MISSING or isinstance(value, Undefined):
            return _MISSING
        value = getattr_(value, attr)
    if value is _MISSING or isinstance(value, Undefined):
        return _MISSING
    return value


def _takes_name(func) -> bool:
    """True if ``func`` can take the placeholder name as a second positional argument."""
    try:
        params = inspect.signature(func).parameters.values()
    except (TypeError, ValueError):
        return False
    positional = 0
    for param in params:
        if param.kind is param.VAR_POSITIONAL:
            return True
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            positional += 1
    return positional >= 2


def _call_with_name(func, data: bytes, name: str):
    if _takes_name(func):
        return func(data, name)
    return func(data)


def _getattr_or_item(obj, attr):
    try:
        return obj[attr]
    except (TypeError, LookupError):
        return getattr(obj, attr, _MISSING)


def _existing_identifiers(package, part_name: str):
    """Yield every identifier a new picture must not collide with."""
    try:
        for entry in package.relationships(part_name):
            yield entry.id
    except ManifestError:
        pass  # register_image reports the broken manifest
    for name in package.part_names:
        if "/media/" in name:
            yield posixpath.basename(name)
        elif name.startswith("word/") and name.endswith(".xml"):
            for match in _DOCPR_ID_RE.finditer(package.read_part(name)):
                yield match.group(1).decode()
