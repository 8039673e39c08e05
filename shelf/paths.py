"""Path utilities for archive locations and manifest references.

Archive locations arrive either as plain paths or as ``file://`` URIs, and
either may be percent-encoded. Cover references inside a package document
are relative to the document and are frequently wrong in real-world files, so
resolution falls back to a search by file name.
"""

from __future__ import annotations

import posixpath
from pathlib import Path
from typing import NamedTuple, Optional
from urllib.parse import unquote

from .logging_config import get_logger
from .walker import find_first, has_name

logger = get_logger(__name__)

FILE_SCHEME = "file://"


class ArchivePath(NamedTuple):
    """The forms an archive location is tried under."""

    uri: str
    path: Path
    raw: Path

    def candidates(self) -> list[Path]:
        """Decoded path first, then the raw form when it differs."""
        if self.raw == self.path:
            return [self.path]
        return [self.path, self.raw]


def strip_scheme(location: str) -> str:
    if location.startswith(FILE_SCHEME):
        return location[len(FILE_SCHEME):]
    return location


def normalize_archive_path(location: str | Path) -> ArchivePath:
    """Split a location into its URI, decoded path and raw path forms.

    Example:
        >>> normalize_archive_path("file:///books/Moby%20Dick.epub").path
        PosixPath('/books/Moby Dick.epub')
    """
    raw = strip_scheme(str(location))
    decoded = unquote(raw) if "%" in raw else raw
    return ArchivePath(
        uri=FILE_SCHEME + decoded,
        path=Path(decoded),
        raw=Path(raw),
    )


def probe_archive(archive: ArchivePath) -> Optional[Path]:
    """Return the first form of the archive that exists on disk, or None."""
    for candidate in archive.candidates():
        if candidate.is_file():
            return candidate
    return None


def alternate_form(archive: ArchivePath, tried: Path) -> Optional[Path]:
    """Return the other form of the archive path, if there is one."""
    for candidate in archive.candidates():
        if candidate != tried:
            return candidate
    return None


def clean_reference(raw_reference: str) -> str:
    """Percent-decode a manifest href and drop any leading ``./``."""
    reference = unquote(raw_reference)
    while reference.startswith("./"):
        reference = reference[2:]
    return reference


def join_folded(base_dir: str, reference: str) -> str:
    """Join a manifest reference onto the directory of its package document.

    References containing ``../`` are folded segment by segment: ``..``
    drops the last directory, ``.`` is ignored, anything else is appended.

    Example:
        >>> join_folded("OEBPS/content", "../images/cover.jpg")
        'OEBPS/images/cover.jpg'
        >>> join_folded("OEBPS", "cover.jpg")
        'OEBPS/cover.jpg'
    """
    if "../" not in reference:
        if not base_dir:
            return reference
        return f"{base_dir}/{reference}"

    parts = base_dir.split("/") if base_dir else []
    for segment in reference.split("/"):
        if segment == "..":
            if parts and parts[-1] != "":
                parts.pop()
        elif segment in (".", ""):
            continue
        else:
            parts.append(segment)
    return "/".join(parts)


def is_within(path: Path, root: Path) -> bool:
    """True when path, with links and ``..`` resolved, lies under root."""
    resolved_root = root.resolve()
    resolved = path.resolve()
    return resolved == resolved_root or resolved_root in resolved.parents


def resolve_cover_path(
    package_doc_path: Path,
    raw_reference: str,
    extraction_root: Path,
    search_depth: int = 3,
) -> Optional[Path]:
    """Resolve a cover href to an existing file inside the extraction root.

    Tries the declared location first, then the first file under
    extraction_root with the same basename.
    """
    reference = clean_reference(raw_reference)
    if not reference:
        return None

    base_dir = package_doc_path.parent.as_posix()
    resolved = Path(join_folded(base_dir, reference))
    if not is_within(resolved, extraction_root):
        logger.warning(f"Cover reference {raw_reference} points outside the archive")
    elif resolved.is_file():
        return resolved

    basename = posixpath.basename(reference)
    if not basename:
        return None

    logger.debug(f"Cover not at {resolved}, searching for {basename}")
    found = find_first(extraction_root, has_name(basename), search_depth)
    if found is None:
        logger.debug(f"Cover file {basename} not found under {extraction_root}")
    return found
