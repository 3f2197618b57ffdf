"""Fixtures that programmatically create .docx templates and images for testing."""

import io
import os
import tempfile

import pytest
from docx import Document
from PIL import Image

from docximg.package import OpcPackage

DOCUMENT_XML = (
    b'<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    b'<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
    b"<w:body><w:p><w:r><w:t>{{%chart}}</w:t></w:r></w:p></w:body></w:document>"
)

CONTENT_TYPES_XML = (
    b'<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    b'<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    b'<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    b'<Default Extension="xml" ContentType="application/xml"/>'
    b'<Override PartName="/word/document.xml" '
    b'ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"/>'
    b"</Types>"
)

RELS_XML = (
    b'<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    b'<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    b'<Relationship Id="rId1" '
    b'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/styles" Target="styles.xml"/>'
    b'<Relationship Id="rId2" '
    b'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/settings" Target="settings.xml"/>'
    b'<Relationship Id="rId7" '
    b'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/hyperlink" '
    b'Target="https://example.com/" TargetMode="External"/>'
    b"</Relationships>"
)


def make_image(width=60, height=40, fmt="PNG", color=(200, 30, 30)) -> bytes:
    """Encode a solid-color image of the given pixel size."""
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def tmp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as d:
        yield d


@pytest.fixture
def png_bytes():
    return make_image()


@pytest.fixture
def minimal_package():
    """An in-memory package with a document part and a three-entry manifest."""
    return OpcPackage(
        {
            "[Content_Types].xml": CONTENT_TYPES_XML,
            "_rels/.rels": b"<Relationships/>",
            "word/document.xml": DOCUMENT_XML,
            "word/_rels/document.xml.rels": RELS_XML,
        }
    )


def _save(doc, tmp_dir, filename):
    path = os.path.join(tmp_dir, filename)
    doc.save(path)
    return path


@pytest.fixture
def simple_template(tmp_dir):
    """Create a .docx with a single {{ name }} placeholder."""
    doc = Document()
    doc.add_paragraph("Hello {{ name }}!")
    return _save(doc, tmp_dir, "simple.docx")


@pytest.fixture
def conditional_template(tmp_dir):
    doc = Document()
    doc.add_paragraph("{% if show_greeting %}Hello {{ name }}!{% endif %}")
    return _save(doc, tmp_dir, "conditional.docx")


@pytest.fixture
def paragraph_loop_template(tmp_dir):
    """Create a .docx whose paragraphs repeat with {%p for %}."""
    doc = Document()
    doc.add_paragraph("{%p for item in items %}")
    doc.add_paragraph("{{ item }}")
    doc.add_paragraph("{%p endfor %}")
    return _save(doc, tmp_dir, "loop.docx")


@pytest.fixture
def image_template(tmp_dir):
    """Create a .docx with a text placeholder and one image placeholder."""
    doc = Document()
    doc.add_paragraph("Report for {{ name }}")
    doc.add_paragraph("{{%chart}}")
    return _save(doc, tmp_dir, "image.docx")


@pytest.fixture
def three_image_template(tmp_dir):
    """Create a .docx with three image placeholders in separate paragraphs."""
    doc = Document()
    doc.add_paragraph("{{%good}}")
    doc.add_paragraph("{{%flat}}")
    doc.add_paragraph("{{%unbound}}")
    doc.add_paragraph("End of report")
    return _save(doc, tmp_dir, "three_images.docx")


@pytest.fixture
def image_loop_template(tmp_dir):
    """Create a .docx with an image placeholder inside a paragraph loop."""
    doc = Document()
    doc.add_paragraph("{%p for teacher in teachers %}")
    doc.add_paragraph("{{ teacher.name }}")
    doc.add_paragraph("{{%teacher.chart}}")
    doc.add_paragraph("{%p endfor %}")
    return _save(doc, tmp_dir, "image_loop.docx")


@pytest.fixture
def fragmented_image_template(tmp_dir):
    """Create a .docx where the image tag is split across several runs.

    This simulates Word's habit of breaking text into separate <w:r>
    elements when it is edited or spell-checked.
    """
    doc = Document()
    p = doc.add_paragraph()
    p.add_run("{")
    p.add_run("{%cha")
    p.add_run("rt}}")
    return _save(doc, tmp_dir, "fragmented.docx")


@pytest.fixture
def header_image_template(tmp_dir):
    """Create a .docx with an image placeholder in the page header."""
    doc = Document()
    doc.sections[0].header.paragraphs[0].text = "{{%logo}}"
    doc.add_paragraph("{{%chart}}")
    return _save(doc, tmp_dir, "header.docx")
