"""Exception types for Shelf.

Scan-level errors end a scan pass and are shown to the caller once.
Extraction errors describe why a single archive produced no metadata; the
extractor absorbs them so one bad file never stops a batch.
"""

from __future__ import annotations


class ShelfError(Exception):
    """Base class for Shelf errors."""


class ScanError(ShelfError):
    """A scan pass could not start."""


class PermissionDeniedError(ScanError, PermissionError):
    """Storage permission was not granted; no file was touched."""


class LibraryNotFoundError(ScanError, FileNotFoundError):
    """The library root does not exist or is not a directory."""


class ExtractionError(ShelfError):
    """Per-archive failure."""


class NotFoundError(ExtractionError):
    """An expected file or archive entry is missing."""


class DecodeError(ExtractionError):
    """The archive could not be decompressed."""


class StorageError(ExtractionError):
    """A copy, delete or mkdir failed."""
