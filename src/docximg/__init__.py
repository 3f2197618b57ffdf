"""docximg: Jinja2 templating for Word .docx files with inline images."""

from docximg.template import DocxTemplate
from docximg.image_module import ImageModule, Placeholder, HostServices
from docximg.imaging import fit_within, pixel_size, to_png

__all__ = [
    "DocxTemplate",
    "ImageModule",
    "Placeholder",
    "HostServices",
    "fit_within",
    "pixel_size",
    "to_png",
]
