"""Per-archive metadata extraction for Shelf.

Each call decompresses one EPUB into its own scratch directory, finds the
package document, reads title and cover from it, caches the cover, and removes
the scratch directory on every exit path. Failures never reach the caller:
they are logged and turn into missing metadata.
"""

from __future__ import annotations

import asyncio
import shutil
import tempfile
import time
from pathlib import Path
from typing import Optional

from .archive import get_archive
from .config import ShelfConfig
from .covers import SCRATCH_PREFIX, book_key, cache_cover
from .errors import DecodeError, ExtractionError, NotFoundError, StorageError
from .logging_config import get_logger
from .models import ExtractedMetadata
from .package import PACKAGE_DOCUMENT_SUFFIX, read_package_document
from .paths import (
    ArchivePath,
    alternate_form,
    clean_reference,
    normalize_archive_path,
    probe_archive,
    resolve_cover_path,
)
from .walker import find_first, has_suffix

logger = get_logger(__name__)


def make_scratch_dir(scratch_root: Path) -> Path:
    """Create a fresh, uniquely named scratch directory."""
    try:
        scratch_root.mkdir(parents=True, exist_ok=True)
        prefix = f"{SCRATCH_PREFIX}{time.time_ns()}_"
        return Path(tempfile.mkdtemp(prefix=prefix, dir=scratch_root))
    except OSError as exc:
        raise StorageError(f"Unable to create scratch directory: {exc}") from exc


def remove_scratch_dir(scratch: Path) -> None:
    try:
        shutil.rmtree(scratch)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.error(f"Failed to remove scratch directory {scratch}: {exc}")


def _unzip(source: Path, scratch: Path) -> Path:
    with get_archive(source) as archive:
        return archive.extract_all(scratch)


def decompress(archive: ArchivePath, source: Path, scratch: Path) -> Path:
    """Unzip into scratch, retrying once with the alternate path form."""
    try:
        return _unzip(source, scratch)
    except (DecodeError, OSError) as exc:
        alternate = alternate_form(archive, source)
        if alternate is None or not alternate.is_file():
            raise DecodeError(f"Unable to unzip {source.name}: {exc}") from exc
        logger.debug(f"Retrying unzip of {source.name} as {alternate}")

    # Start the retry from an empty directory
    remove_scratch_dir(scratch)
    scratch.mkdir(parents=True, exist_ok=True)
    try:
        return _unzip(alternate, scratch)
    except (DecodeError, OSError) as exc:
        raise DecodeError(f"Unable to unzip {alternate.name} on retry: {exc}") from exc


def find_package_document(root: Path, max_depth: int) -> Path:
    opf_path = find_first(root, has_suffix(PACKAGE_DOCUMENT_SUFFIX), max_depth)
    if opf_path is None:
        raise NotFoundError("No package document in archive")
    return opf_path


def _cache_declared_cover(
    opf_path: Path,
    cover_href: str,
    root: Path,
    archive: ArchivePath,
    config: ShelfConfig,
) -> Optional[Path]:
    resolved = resolve_cover_path(
        opf_path, cover_href, root, config.scanner.cover_search_depth
    )
    if resolved is None:
        logger.debug(f"Cover {cover_href} unresolved in {archive.path.name}")
        return None

    hint = Path(clean_reference(cover_href)).suffix or resolved.suffix
    return cache_cover(
        resolved,
        hint,
        config.covers_dir,
        book_key(archive.path.name),
        config.covers,
    )


def _extract_into(
    archive: ArchivePath, source: Path, scratch: Path, config: ShelfConfig
) -> ExtractedMetadata:
    root = decompress(archive, source, scratch)
    opf_path = find_package_document(root, config.scanner.package_search_depth)

    try:
        info = read_package_document(opf_path)
    except OSError as exc:
        raise NotFoundError(f"Unreadable package document {opf_path.name}: {exc}") from exc

    cover_path = None
    if info.cover_href:
        cover_path = _cache_declared_cover(opf_path, info.cover_href, root, archive, config)

    return ExtractedMetadata(
        title=info.title,
        cover_path=str(cover_path) if cover_path else None,
    )


def extract(epub_path: str | Path, config: ShelfConfig) -> ExtractedMetadata:
    """Extract title and cached cover path from an EPUB.

    Never raises; a missing field means it could not be determined.
    """
    archive = normalize_archive_path(epub_path)
    name = archive.path.name

    source = probe_archive(archive)
    if source is None:
        logger.error(f"✗ {name} - File not found")
        return ExtractedMetadata()

    try:
        scratch = make_scratch_dir(config.scratch_dir)
    except StorageError as exc:
        logger.error(f"✗ {name} - {exc}")
        return ExtractedMetadata()

    try:
        metadata = _extract_into(archive, source, scratch, config)
    except ExtractionError as exc:
        logger.warning(f"✗ {name} - {exc}")
        return ExtractedMetadata()
    except Exception as exc:
        logger.error(f"✗ {name} - Unexpected error during extraction: {exc}")
        return ExtractedMetadata()
    finally:
        remove_scratch_dir(scratch)

    cover_status = "✓" if metadata.cover_path else "✗"
    logger.debug(f"{cover_status} {name} (title: {metadata.title or '-'})")
    return metadata


async def extract_async(epub_path: str | Path, config: ShelfConfig) -> ExtractedMetadata:
    """Run extract() without blocking the event loop."""
    return await asyncio.to_thread(extract, epub_path, config)
