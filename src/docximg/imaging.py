"""Raster image helpers built on Pillow.

``pixel_size``, ``fit_within`` and ``to_png`` are ready-made ``size_of`` and
``transform`` callables for :class:`docximg.ImageModule`.
"""

import io

from PIL import Image, UnidentifiedImageError

# Pillow format name -> (part file extension, OOXML content type)
CONTENT_TYPES = {
    "PNG": ("png", "image/png"),
    "JPEG": ("jpeg", "image/jpeg"),
    "GIF": ("gif", "image/gif"),
    "BMP": ("bmp", "image/bmp"),
    "TIFF": ("tiff", "image/tiff"),
}


def sniff_format(data: bytes) -> str | None:
    """Return Pillow's format name for ``data`` (``"PNG"``, ``"JPEG"``...), or None."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.format
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError):
        return None


def pixel_size(data: bytes) -> tuple[int, int]:
    """Return the native ``(width, height)`` of an encoded image in pixels."""
    with Image.open(io.BytesIO(data)) as img:
        return img.size


def fit_within(max_width: int, max_height: int | None = None):
    """Build a ``size_of`` callable that scales images down to fit a box.

    Aspect ratio is kept; images already smaller than the box keep their
    native size.
    """

    def size_of(data: bytes) -> tuple[int, int]:
        width, height = pixel_size(data)
        scale = 1.0
        if width > max_width:
            scale = max_width / width
        if max_height is not None and height * scale > max_height:
            scale = max_height / height
        return int(width * scale), int(height * scale)

    return size_of


def to_png(data: bytes) -> bytes:
    """Re-encode any Pillow-readable raster image as PNG."""
    with Image.open(io.BytesIO(data)) as img:
        if img.format == "PNG":
            return data
        if img.mode not in ("RGB", "RGBA", "L", "LA", "P"):
            img = img.convert("RGBA" if "A" in img.mode else "RGB")
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()
