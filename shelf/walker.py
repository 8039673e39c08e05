"""Bounded directory traversal for Shelf.

One search primitive serves every recursive lookup in the package:
- EPUB discovery under the library root
- package document lookup inside an extracted archive
- cover lookup by filename when a manifest path is wrong
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from .logging_config import get_logger
from .models import EPUB_SUFFIX, CandidateFile

logger = get_logger(__name__)

EntryPredicate = Callable[[os.DirEntry], bool]


def _list_dir(directory: Path) -> list[os.DirEntry]:
    """Return directory entries sorted by name, or [] if unreadable."""
    try:
        with os.scandir(directory) as it:
            return sorted(it, key=lambda e: e.name)
    except OSError as exc:
        logger.debug(f"Skipping unreadable directory {directory}: {exc}")
        return []


def _is_dir(entry: os.DirEntry) -> bool:
    try:
        return entry.is_dir()
    except OSError:
        return False


def find_entries(
    root: Path,
    predicate: EntryPredicate,
    max_depth: int,
    *,
    skip_dir: Optional[EntryPredicate] = None,
) -> Iterator[Path]:
    """Yield files under root whose entry matches predicate.

    ``max_depth`` counts directory levels: 1 searches only ``root`` itself,
    0 or less yields nothing. Entries of a directory are all tested before
    any of its subdirectories is entered. Each resolved directory and file is
    visited once per call, so symlink loops terminate. Directories are never
    yielded; those matching ``skip_dir`` are not entered.
    """
    visited: set[Path] = set()
    yield from _find(Path(root), predicate, max_depth, skip_dir, visited)


def _find(
    directory: Path,
    predicate: EntryPredicate,
    max_depth: int,
    skip_dir: Optional[EntryPredicate],
    visited: set[Path],
) -> Iterator[Path]:
    if max_depth <= 0:
        return

    try:
        resolved = directory.resolve()
    except OSError:
        return
    if resolved in visited:
        return
    visited.add(resolved)

    entries = _list_dir(directory)
    subdirs = []

    for entry in entries:
        if _is_dir(entry):
            if skip_dir is None or not skip_dir(entry):
                subdirs.append(entry)
            continue

        entry_path = Path(entry.path)
        key = Path(os.path.realpath(entry_path))
        if key in visited:
            continue
        visited.add(key)

        if predicate(entry):
            yield entry_path

    for entry in subdirs:
        yield from _find(Path(entry.path), predicate, max_depth - 1, skip_dir, visited)


def find_first(
    root: Path,
    predicate: EntryPredicate,
    max_depth: int,
) -> Optional[Path]:
    """Return the first path find_entries would yield, or None."""
    return next(find_entries(root, predicate, max_depth), None)


def has_suffix(suffix: str) -> EntryPredicate:
    """Predicate matching file names ending in suffix, case-insensitively."""
    suffix = suffix.lower()
    return lambda entry: entry.name.lower().endswith(suffix)


def has_name(name: str) -> EntryPredicate:
    """Predicate matching an exact file name."""
    return lambda entry: entry.name == name


def _should_ignore(name: str, ignore_patterns: Iterable[str]) -> bool:
    """Check if a file should be ignored based on patterns or macOS temp files."""
    if name.startswith("._"):
        return True
    return name in ignore_patterns


def is_epub_file(path: Path) -> bool:
    """Return True if the path looks like an EPUB package."""
    return path.name.lower().endswith(EPUB_SUFFIX) and not path.name.startswith("._")


def walk(
    root: Path,
    max_depth: int = 3,
    ignore_patterns: tuple[str, ...] = (),
) -> list[CandidateFile]:
    """Collect EPUB candidates under root, descending at most max_depth levels."""
    if max_depth <= 0:
        return []

    epub_match = has_suffix(EPUB_SUFFIX)

    def _matches(entry: os.DirEntry) -> bool:
        return epub_match(entry) and not _should_ignore(entry.name, ignore_patterns)

    def _ignored_dir(entry: os.DirEntry) -> bool:
        return _should_ignore(entry.name, ignore_patterns)

    candidates: list[CandidateFile] = []
    for path in find_entries(Path(root), _matches, max_depth, skip_dir=_ignored_dir):
        try:
            candidates.append(CandidateFile.from_path(path))
        except OSError as exc:
            # Vanished or unreadable between listing and stat
            logger.debug(f"✗ {path.name} - Unable to stat: {exc}")
            continue

    logger.debug(f"Found {len(candidates)} EPUB files under {root}")
    return candidates
