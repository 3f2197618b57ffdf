"""Tests for identifier allocation."""

from docximg.ids import IdAllocator, numeric_suffix


class TestNumericSuffix:
    def test_relationship_id(self):
        assert numeric_suffix("rId12") == 12

    def test_media_file_name(self):
        assert numeric_suffix("image3.png") == 3

    def test_plain_number(self):
        assert numeric_suffix("42") == 42

    def test_no_digits(self):
        assert numeric_suffix("rIdHeader") is None
        assert numeric_suffix("") is None


class TestIdAllocator:
    def test_starts_above_highest_existing(self):
        ids = IdAllocator.from_existing(["rId1", "rId9", "rId4", "image12.png"])
        assert ids.next() == 13

    def test_empty_package_starts_at_one(self):
        assert IdAllocator.from_existing([]).next() == 1

    def test_non_numeric_ids_ignored(self):
        ids = IdAllocator.from_existing(["rIdCustom", "rId2"])
        assert ids.next() == 3

    def test_successive_allocations_are_distinct(self):
        existing = ["rId1", "rId2", "rId7"]
        ids = IdAllocator.from_existing(existing)
        allocated = [f"rId{ids.next()}" for _ in range(50)]
        assert len(set(allocated)) == 50
        assert not set(allocated) & set(existing)
        assert ids.last == 57
