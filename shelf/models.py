"""Pydantic models for Shelf.

Nothing here is persisted: candidates and descriptors are rebuilt on every
scan pass and live only as long as the caller keeps them.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

EPUB_SUFFIX = ".epub"


def strip_epub_suffix(filename: str) -> str:
    """Return filename without a trailing .epub (any case)."""
    if filename.lower().endswith(EPUB_SUFFIX):
        return filename[: -len(EPUB_SUFFIX)]
    return filename


def candidate_id(path: Path, size: int, modified_at: Optional[datetime]) -> str:
    """Build the per-scan identity of a file from (path, size, mtime)."""
    mtime_ms = int(modified_at.timestamp() * 1000) if modified_at else 0
    return f"{path}_{size}_{mtime_ms}"


class CandidateFile(BaseModel):
    """An EPUB found on disk during one scan."""

    id: str
    path: Path
    name: str
    size: int
    modified_at: Optional[datetime] = None

    @classmethod
    def from_path(cls, path: Path) -> "CandidateFile":
        """Stat a file and build its candidate. Raises OSError if stat fails."""
        stat = path.stat()
        modified_at = datetime.fromtimestamp(stat.st_mtime)
        return cls(
            id=candidate_id(path, stat.st_size, modified_at),
            path=path,
            name=strip_epub_suffix(path.name),
            size=stat.st_size,
            modified_at=modified_at,
        )


class ExtractedMetadata(BaseModel):
    """Display metadata pulled from one archive. Both fields may be missing."""

    title: Optional[str] = None
    cover_path: Optional[str] = None


class BookDescriptor(CandidateFile):
    """A candidate enriched with display metadata."""

    title: str
    cover_path: Optional[Path] = None

    @classmethod
    def from_candidate(
        cls, candidate: CandidateFile, metadata: ExtractedMetadata
    ) -> "BookDescriptor":
        return cls(
            **candidate.model_dump(),
            title=metadata.title or candidate.name,
            cover_path=Path(metadata.cover_path) if metadata.cover_path else None,
        )

    @property
    def uri(self) -> str:
        return str(self.path)

    def to_public(self) -> dict:
        """Presentation shape handed to UI collaborators."""
        return {
            "id": self.id,
            "uri": self.uri,
            "name": self.name,
            "title": self.title,
            "coverUri": str(self.cover_path) if self.cover_path else None,
            "size": self.size,
            "lastModifiedAt": (
                int(self.modified_at.timestamp() * 1000) if self.modified_at else None
            ),
        }


class ScanResult(BaseModel):
    """Outcome of one scan pass."""

    root: Path
    books: list[BookDescriptor] = Field(default_factory=list)
    duplicates_removed: int = 0
    failed: int = 0

    def find(self, book_id: str) -> Optional[BookDescriptor]:
        return next((b for b in self.books if b.id == book_id), None)
