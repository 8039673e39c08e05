"""Duplicate detection and cleanup for Shelf.

Copies of the same book are grouped by a normalized filename rather than by
content, so re-imported files whose bytes drifted still group together. The
most recently modified copy of each group survives; the others are deleted.
"""

from __future__ import annotations

import re
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Iterable

from .logging_config import get_logger
from .models import CandidateFile, strip_epub_suffix

logger = get_logger(__name__)

_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9]")


def normalize(name: str) -> str:
    """Return the grouping key for a file name.

    >>> normalize("Moby Dick (1).EPUB")
    'moby_dick__1_'
    """
    key = strip_epub_suffix(name).strip()
    return _NON_ALNUM_RE.sub("_", key).lower()


def group(files: Iterable[CandidateFile]) -> dict[str, list[CandidateFile]]:
    """Bucket candidates by normalized name, keeping only buckets of two or more."""
    buckets: dict[str, list[CandidateFile]] = defaultdict(list)
    for candidate in files:
        buckets[normalize(candidate.name)].append(candidate)

    groups = {key: members for key, members in buckets.items() if len(members) > 1}
    for key, members in groups.items():
        logger.info(f"Found {len(members)} copies of '{key}'")
        for member in members:
            logger.debug(f"  - {member.name} ({member.path})")
    return groups


def order_group(members: Iterable[CandidateFile]) -> list[CandidateFile]:
    """Sort a group so the copy to keep comes first.

    Newest modification time first; a missing time counts as the oldest.
    Equal times fall back to the lexicographically smallest path.
    """
    by_path = sorted(members, key=lambda c: str(c.path))
    return sorted(
        by_path,
        key=lambda c: c.modified_at or datetime.min,
        reverse=True,
    )


def _delete_file(path: Path) -> bool:
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        logger.debug(f"Already gone: {path}")
        return False
    except OSError as exc:
        logger.error(f"✗ Failed to remove duplicate {path}: {exc}")
        return False


def _resolve_group(key: str, members: list[CandidateFile]) -> tuple[bool, int]:
    """Keep the newest member and delete the rest.

    Returns (resolved, removed). A group whose keeper is gone is left alone
    and reported as unresolved.
    """
    keep, *others = order_group(members)

    if not keep.path.exists():
        logger.error(f"✗ Copy to keep is missing, skipping group '{key}': {keep.path}")
        return False, 0

    logger.info(f"[KEEP] {keep.name} ({keep.path})")

    removed = 0
    for duplicate in others:
        if duplicate.path == keep.path:
            continue
        if not duplicate.path.exists():
            logger.debug(f"Already gone: {duplicate.path}")
            continue

        if _delete_file(duplicate.path):
            removed += 1
            logger.info(f"[-] Removed duplicate: {duplicate.name} ({duplicate.path})")

    return True, removed


def resolve(groups: dict[str, list[CandidateFile]]) -> int:
    """Delete every copy but the newest in each group. Returns files removed.

    A failed delete is logged and skipped; the rest of the batch continues.
    """
    removed = 0
    for key, members in groups.items():
        if len(members) > 1:
            removed += _resolve_group(key, members)[1]
    return removed


def dedupe(files: list[CandidateFile]) -> tuple[list[CandidateFile], int]:
    """Group, resolve, and return (survivors in input order, removed count).

    In every resolved group only the kept copy survives, even when deleting
    one of the others failed. Members of a group skipped for a missing keeper
    are passed through untouched.
    """
    groups = group(files)
    if not groups:
        return list(files), 0

    removed = 0
    dropped: set[Path] = set()
    for key, members in groups.items():
        resolved, count = _resolve_group(key, members)
        removed += count
        if resolved:
            keep_path = order_group(members)[0].path
            dropped.update(c.path for c in members if c.path != keep_path)

    survivors = [c for c in files if c.path not in dropped and c.path.exists()]
    return survivors, removed
