"""Custom exceptions for docximg."""


class DocxTemplateError(Exception):
    """Base exception for docximg errors."""


class TemplateRenderError(DocxTemplateError):
    """Raised when Jinja2 rendering fails."""


class InvalidTemplateError(DocxTemplateError):
    """Raised when the template .docx is invalid or cannot be loaded."""


class ManifestError(DocxTemplateError):
    """Raised when a relationship manifest part is missing or cannot be parsed."""


class PackageWriteError(DocxTemplateError):
    """Raised when the package cannot accept a new part.

    This is never recovered inside docximg: a document referencing a part
    that was not written would be silently corrupt.
    """
