"""Identifier allocation for new relationships and media parts."""

import re

_NUMERIC_SUFFIX = re.compile(r"(\d+)(?:\.[A-Za-z0-9]+)?$")


def numeric_suffix(value: str) -> int | None:
    """Return the trailing integer of ``rId12``, ``12`` or ``media/image12.png``."""
    match = _NUMERIC_SUFFIX.search(value or "")
    return int(match.group(1)) if match else None


class IdAllocator:
    """Monotonic counter that never hands out an identifier already in use.

    Seeded with the highest numeric suffix among the existing identifiers;
    every call to :meth:`next` returns a strictly larger integer.
    """

    def __init__(self, start: int = 0):
        self._last = start

    @classmethod
    def from_existing(cls, identifiers) -> "IdAllocator":
        suffixes = [n for n in map(numeric_suffix, identifiers) if n is not None]
        return cls(max(suffixes, default=0))

    @property
    def last(self) -> int:
        return self._last

    def next(self) -> int:
        self._last += 1
        return self._last
