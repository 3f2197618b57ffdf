"""Tests for the in-memory package accessor."""

import io
import os

import pytest
from lxml import etree

from docximg.exceptions import InvalidTemplateError, PackageWriteError
from docximg.package import CONTENT_TYPES_NS, CONTENT_TYPES_PART, OpcPackage


def _defaults(package):
    root = etree.fromstring(package.read_part(CONTENT_TYPES_PART))
    return {el.get("Extension"): el.get("ContentType") for el in root.iter(f"{{{CONTENT_TYPES_NS}}}Default")}


class TestOpen:
    def test_open_invalid_path_raises(self):
        with pytest.raises(InvalidTemplateError):
            OpcPackage.open("/nonexistent/path.docx")

    def test_open_non_zip_raises(self, tmp_dir):
        path = os.path.join(tmp_dir, "not_a_docx.docx")
        with open(path, "wb") as f:
            f.write(b"plain text")
        with pytest.raises(InvalidTemplateError):
            OpcPackage.open(path)

    def test_save_and_reopen(self, minimal_package):
        buf = io.BytesIO(minimal_package.to_bytes())
        reopened = OpcPackage.open(buf)
        assert reopened.part_names[0] == CONTENT_TYPES_PART
        assert set(reopened.part_names) == set(minimal_package.part_names)
        assert reopened.read_part("word/document.xml") == minimal_package.read_part("word/document.xml")


class TestParts:
    def test_read_missing_part_raises_key_error(self, minimal_package):
        with pytest.raises(KeyError):
            minimal_package.read_part("word/missing.xml")

    def test_add_part(self, minimal_package):
        minimal_package.add_part("word/media/image1.png", b"data")
        assert minimal_package.has_part("word/media/image1.png")

    def test_add_part_never_overwrites(self, minimal_package):
        with pytest.raises(PackageWriteError):
            minimal_package.add_part("word/document.xml", b"<x/>")

    def test_write_part_replaces(self, minimal_package):
        minimal_package.write_part("word/document.xml", b"<x/>")
        assert minimal_package.read_part("word/document.xml") == b"<x/>"

    @pytest.mark.parametrize("name", ["", "/word/x.png", "word/../x.png", "word/media/"])
    def test_invalid_names_rejected(self, minimal_package, name):
        with pytest.raises(PackageWriteError):
            minimal_package.write_part(name, b"data")

    def test_non_bytes_rejected(self, minimal_package):
        with pytest.raises(PackageWriteError):
            minimal_package.write_part("word/media/image1.png", "text")

    def test_relationships(self, minimal_package):
        assert [e.id for e in minimal_package.relationships("word/document.xml")] == ["rId1", "rId2", "rId7"]

    def test_relationships_of_part_without_manifest(self, minimal_package):
        assert minimal_package.relationships("word/header1.xml") == []


class TestContentTypes:
    def test_adds_missing_default(self, minimal_package):
        minimal_package.ensure_default_content_type("png", "image/png")
        assert _defaults(minimal_package)["png"] == "image/png"

    def test_default_inserted_before_overrides(self, minimal_package):
        minimal_package.ensure_default_content_type("png", "image/png")
        root = etree.fromstring(minimal_package.read_part(CONTENT_TYPES_PART))
        tags = [etree.QName(el).localname for el in root]
        assert tags == ["Default", "Default", "Default", "Override"]

    def test_existing_default_kept(self, minimal_package):
        minimal_package.ensure_default_content_type("PNG", "image/png")
        before = minimal_package.read_part(CONTENT_TYPES_PART)
        minimal_package.ensure_default_content_type("png", "image/png")
        assert minimal_package.read_part(CONTENT_TYPES_PART) == before

    def test_missing_content_types_is_fatal(self):
        package = OpcPackage({"word/document.xml": b"<x/>"})
        with pytest.raises(PackageWriteError):
            package.ensure_default_content_type("png", "image/png")
