"""WordprocessingML markup for inline pictures."""

from xml.sax.saxutils import quoteattr

# Word XML namespaces used by an inline picture
NSMAP = {
    "w": "http://schemas.openxmlformats.org/wordprocessingml/2006/main",
    "wp": "http://schemas.openxmlformats.org/drawingml/2006/wordprocessingDrawing",
    "a": "http://schemas.openxmlformats.org/drawingml/2006/main",
    "pic": "http://schemas.openxmlformats.org/drawingml/2006/picture",
    "r": "http://schemas.openxmlformats.org/officeDocument/2006/relationships",
}

EMU_PER_INCH = 914400
EMU_PER_PIXEL = 9525  # at 96 DPI


def px_to_emu(px: float) -> int:
    """Convert pixels (96 DPI) to EMUs (English Metric Units)."""
    return int(round(px * EMU_PER_PIXEL))


def inline_image_xml(rel_id: str, cx: int, cy: int, name: str = "Image", docpr_id: int = 1) -> str:
    """Build a ``<w:r>`` holding an inline picture that embeds ``rel_id``.

    ``cx`` and ``cy`` are the extent in EMUs. The run declares every
    namespace it uses so the fragment is well-formed on its own.
    """
    if cx <= 0 or cy <= 0:
        raise ValueError(f"Picture extent must be positive, got {cx}x{cy}")

    name_attr = quoteattr(name or "Image")
    ns_decls = " ".join(f'xmlns:{prefix}="{uri}"' for prefix, uri in NSMAP.items())
    return (
        f"<w:r {ns_decls}>"
        "<w:drawing>"
        '<wp:inline distT="0" distB="0" distL="0" distR="0">'
        f'<wp:extent cx="{cx}" cy="{cy}"/>'
        '<wp:effectExtent l="0" t="0" r="0" b="0"/>'
        f"<wp:docPr id=\"{docpr_id}\" name={name_attr}/>"
        '<wp:cNvGraphicFramePr><a:graphicFrameLocks noChangeAspect="1"/></wp:cNvGraphicFramePr>'
        "<a:graphic>"
        '<a:graphicData uri="http://schemas.openxmlformats.org/drawingml/2006/picture">'
        "<pic:pic>"
        "<pic:nvPicPr>"
        f"<pic:cNvPr id=\"0\" name={name_attr}/>"
        "<pic:cNvPicPr/>"
        "</pic:nvPicPr>"
        "<pic:blipFill>"
        f'<a:blip r:embed="{rel_id}"/>'
        "<a:stretch><a:fillRect/></a:stretch>"
        "</pic:blipFill>"
        "<pic:spPr>"
        '<a:xfrm><a:off x="0" y="0"/>'
        f'<a:ext cx="{cx}" cy="{cy}"/></a:xfrm>'
        '<a:prstGeom prst="rect"><a:avLst/></a:prstGeom>'
        "</pic:spPr>"
        "</pic:pic>"
        "</a:graphicData>"
        "</a:graphic>"
        "</wp:inline>"
        "</w:drawing>"
        "</w:r>"
    )
