"""Errors raised while extracting, decoding and calibrating DB08 containers."""
from __future__ import annotations


class TdbError(Exception):
    """Base class for all dynastytdb errors."""


class MissingMagicError(TdbError, ValueError):
    """No DB08 signature found in the save buffer."""


class CorruptContainerError(TdbError, ValueError):
    """Container header or directory offsets exceed the buffer."""


class InvalidLayoutError(TdbError, ValueError):
    """Table header or field layout fails sanity bounds."""


class MissingLayoutError(TdbError, LookupError):
    """A requested table has no entry in the layout artifact."""

    def __init__(self, table: str):
        super().__init__(f"Missing layout for table: {table}")
        self.table = table


class MissingTableError(TdbError, LookupError):
    """A requested table is not present in the container directory."""

    def __init__(self, table: str):
        super().__init__(f"Missing table in DB: {table}")
        self.table = table


class AmbiguousLookupInference(TdbError, ValueError):
    """No index/value candidate pair satisfies the lookup-table constraints."""
