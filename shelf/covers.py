"""Cover image cache for Shelf.

Resolved covers are copied out of the scratch directory into `covers/` under
a name carrying a per-call token (`book_cover_{book}_{token}.{ext}`), so two
extractions never write the same file, even for the same archive.
"""

from __future__ import annotations

import re
import shutil
import uuid
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError

from .config import CoverConfig, ShelfConfig
from .logging_config import get_logger

logger = get_logger(__name__)

COVER_PREFIX = "book_cover_"
SCRATCH_PREFIX = "extract_"
DEFAULT_EXTENSION = "jpg"

KNOWN_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp", "bmp", "svg"}

# Pillow format name -> file extension
PIL_FORMATS = {
    "JPEG": "jpg",
    "PNG": "png",
    "GIF": "gif",
    "WEBP": "webp",
    "BMP": "bmp",
}

_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9]")


def book_key(archive_name: str) -> str:
    """Filename-derived key used in cache file names."""
    return _NON_ALNUM_RE.sub("", archive_name) or "unknown"


def _sniff_extension(source: Path) -> Optional[str]:
    try:
        with Image.open(source) as im:
            return PIL_FORMATS.get(im.format or "")
    except (UnidentifiedImageError, OSError):
        return None


def pick_extension(source: Path, extension_hint: Optional[str]) -> str:
    """Use the hint when it names an image type, else ask Pillow, else jpg."""
    hint = (extension_hint or "").lower().lstrip(".")
    if hint in KNOWN_EXTENSIONS:
        return hint
    return _sniff_extension(source) or DEFAULT_EXTENSION


def _save_resized(source: Path, target: Path, settings: CoverConfig) -> None:
    with Image.open(source) as im:
        im = im.convert("RGB")
        im.thumbnail((settings.max_width, settings.max_height))
        im.save(target, format="JPEG", quality=settings.quality, optimize=True)


def cache_cover(
    source: Path,
    extension_hint: Optional[str],
    covers_dir: Path,
    key: str,
    settings: Optional[CoverConfig] = None,
) -> Optional[Path]:
    """Copy a cover into the cache and return the cached path.

    Returns None on any failure; a book without a cover is still a book.
    """
    settings = settings or CoverConfig()
    extension = pick_extension(source, extension_hint)
    resize = settings.resize and extension != "svg"
    if resize:
        extension = "jpg"

    target = covers_dir / f"{COVER_PREFIX}{key}_{uuid.uuid4().hex}.{extension}"

    try:
        covers_dir.mkdir(parents=True, exist_ok=True)
        if resize:
            _save_resized(source, target, settings)
        else:
            shutil.copyfile(source, target)
    except (OSError, UnidentifiedImageError, ValueError) as exc:
        logger.error(f"✗ Failed to cache cover {source.name}: {exc}")
        target.unlink(missing_ok=True)
        return None

    logger.debug(f"Cached cover {source.name} -> {target.name}")
    return target


def remove_cover(path: Optional[Path]) -> bool:
    """Delete a cached cover. Returns True if a file was removed."""
    if path is None or not path.exists():
        return False
    try:
        path.unlink()
        return True
    except OSError as exc:
        logger.error(f"Failed to delete cover {path}: {exc}")
        return False


def prune_covers(covers_dir: Path, keep: set[Path]) -> int:
    """Delete cached covers that are not in keep. Returns count removed.

    Each scan caches a fresh file per book, so the previous pass's covers
    become orphans once its result is replaced.
    """
    if not covers_dir.exists():
        return 0

    removed = 0
    for cover in covers_dir.glob(f"{COVER_PREFIX}*"):
        if cover in keep:
            continue
        if remove_cover(cover):
            removed += 1

    if removed:
        logger.debug(f"Pruned {removed} stale covers")
    return removed


def cleanup_cache(config: ShelfConfig) -> int:
    """Remove cached covers and scratch directories left by interrupted runs.

    Returns count of removed entries.
    """
    deleted = 0

    if config.covers_dir.exists():
        for cover in config.covers_dir.glob(f"{COVER_PREFIX}*"):
            if remove_cover(cover):
                deleted += 1

    if config.scratch_dir.exists():
        for scratch in config.scratch_dir.glob(f"{SCRATCH_PREFIX}*"):
            try:
                shutil.rmtree(scratch)
                deleted += 1
            except OSError as exc:
                logger.error(f"Failed to remove scratch directory {scratch}: {exc}")

    return deleted
