"""Library index for Shelf.

Responsible for turning the library folder into an ordered list of book
descriptors.

Implements:
- one scan pass: walk, remove duplicates, extract metadata per book
- concurrent extraction bounded by config
- the "open" hand-off and book deletion/import used by collaborators
"""

from __future__ import annotations

import asyncio
import shutil
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional, TypeVar

from .config import ShelfConfig
from .covers import prune_covers, remove_cover
from .duplicates import dedupe
from .errors import LibraryNotFoundError, PermissionDeniedError
from .extractor import extract_async
from .logging_config import get_logger
from .models import BookDescriptor, CandidateFile, ScanResult, strip_epub_suffix
from .walker import is_epub_file, walk

logger = get_logger(__name__)

T = TypeVar("T")


def check_library(config: ShelfConfig, permission_granted: Optional[bool] = None) -> Path:
    """Return the library root or raise the scan-level error that blocks it.

    Nothing on disk is read or changed before both checks pass.
    """
    granted = (
        config.library.permission_granted
        if permission_granted is None
        else permission_granted
    )
    if not granted:
        raise PermissionDeniedError("Storage permission not granted; scan skipped")

    root = config.library_path
    if not root.is_dir():
        raise LibraryNotFoundError(f"Library path does not exist: {root}")
    return root


async def _describe(
    candidate: CandidateFile,
    config: ShelfConfig,
    semaphore: asyncio.Semaphore,
) -> BookDescriptor:
    async with semaphore:
        metadata = await extract_async(candidate.path, config)
    if not candidate.path.exists():
        raise FileNotFoundError(f"{candidate.path} disappeared during scan")
    return BookDescriptor.from_candidate(candidate, metadata)


def sort_newest_first(books: Iterable[BookDescriptor]) -> list[BookDescriptor]:
    return sorted(books, key=lambda b: b.modified_at or datetime.min, reverse=True)


async def scan_library_async(
    config: ShelfConfig,
    permission_granted: Optional[bool] = None,
) -> ScanResult:
    """Scan the library once and return its books, newest first.

    Covers cached by earlier passes are deleted once this pass has its own.

    :param config: Loaded Shelf configuration.
    :param permission_granted: Overrides the configured storage permission.
    :return: ScanResult with books, duplicates removed and failed count.
    :raises PermissionDeniedError: if permission is not granted.
    :raises LibraryNotFoundError: if the library root is missing.
    """
    root = check_library(config, permission_granted)

    candidates = walk(root, config.scanner.max_depth, config.scanner.ignore_patterns)
    logger.info(f"[SCAN] {root} ({len(candidates)} files)")

    survivors, removed = dedupe(candidates)
    if removed:
        logger.info(f"[-] Removed {removed} duplicate files")

    semaphore = asyncio.Semaphore(max(1, config.scanner.max_concurrent_extractions))
    outcomes = await asyncio.gather(
        *(_describe(c, config, semaphore) for c in survivors),
        return_exceptions=True,
    )

    books: list[BookDescriptor] = []
    failed = 0
    for candidate, outcome in zip(survivors, outcomes):
        if isinstance(outcome, BookDescriptor):
            books.append(outcome)
        else:
            failed += 1
            logger.error(f"✗ {candidate.path.name} - {outcome}")

    prune_covers(config.covers_dir, {b.cover_path for b in books if b.cover_path})

    return ScanResult(
        root=root,
        books=sort_newest_first(books),
        duplicates_removed=removed,
        failed=failed,
    )


def scan_library(
    config: ShelfConfig,
    permission_granted: Optional[bool] = None,
) -> ScanResult:
    """Synchronous wrapper around scan_library_async."""
    return asyncio.run(scan_library_async(config, permission_granted))


def open_book(book: BookDescriptor, opener: Callable[[str], T]) -> T:
    """Hand a book's uri to the content renderer and return its answer."""
    if not book.path.exists():
        raise FileNotFoundError(f"Book file not found: {book.path}")
    logger.info(f"[OPEN] {book.title} ({book.uri})")
    return opener(book.uri)


def delete_books(books: Iterable[BookDescriptor]) -> tuple[int, int]:
    """Delete book files and their cached covers.

    Returns (deleted, failed); a failure on one book never stops the rest.
    """
    deleted = 0
    failed = 0
    for book in books:
        try:
            book.path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error(f"✗ Failed to delete {book.path.name}: {exc}")
            failed += 1
            continue
        remove_cover(book.cover_path)
        deleted += 1
        logger.info(f"[-] Removed: {book.path.name}")
    return deleted, failed


def _free_target(directory: Path, filename: str) -> Path:
    target = directory / filename
    stem = strip_epub_suffix(filename)
    suffix = filename[len(stem):]
    counter = 1
    while target.exists():
        target = directory / f"{stem}_{counter}{suffix}"
        counter += 1
    return target


def import_book(
    source: Path,
    config: ShelfConfig,
    permission_granted: Optional[bool] = None,
) -> Path:
    """Copy an external EPUB into the library root and return the new path.

    An existing file with the same name is never overwritten; the copy gets a
    numeric suffix instead.
    """
    root = check_library(config, permission_granted)
    if not source.is_file():
        raise FileNotFoundError(f"File not found: {source}")
    if not is_epub_file(source):
        raise ValueError(f"Not an EPUB file: {source.name}")

    target = _free_target(root, source.name)
    shutil.copy2(source, target)
    logger.info(f"[+] Imported: {source.name} -> {target.name}")
    return target
