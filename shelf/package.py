"""Package document (OPF) inspection for Shelf.

The OPF is scanned as raw text with a handful of literal patterns instead of
being parsed as XML. Malformed documents that a strict parser would reject
still yield a title and cover when the relevant tags are intact.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

PACKAGE_DOCUMENT_SUFFIX = ".opf"

TITLE_PATTERN = re.compile(r"<dc:title[^>]*>(.*?)</dc:title>", re.IGNORECASE | re.DOTALL)

# Tried in order; the first pattern that matches wins.
COVER_PATTERNS = (
    re.compile(r'<item[^>]*id="cover-image"[^>]*href="([^"]*)"[^>]*>', re.IGNORECASE),
    re.compile(r'<item[^>]*id="cover"[^>]*href="([^"]*)"[^>]*>', re.IGNORECASE),
    re.compile(r'<item[^>]*href="([^"]*)"[^>]*media-type="image/[^"]*"[^>]*>', re.IGNORECASE),
)


class PackageInfo(BaseModel):
    """Fields pulled from a package document (all optional)."""

    title: Optional[str] = None
    cover_href: Optional[str] = None


def find_title(text: str) -> Optional[str]:
    match = TITLE_PATTERN.search(text)
    if match is None:
        return None
    title = match.group(1).strip()
    return title or None


def find_cover_href(text: str) -> Optional[str]:
    for pattern in COVER_PATTERNS:
        match = pattern.search(text)
        if match and match.group(1):
            return match.group(1)
    return None


def parse_package_text(text: str) -> PackageInfo:
    """Extract the title and cover reference from raw OPF text."""
    return PackageInfo(title=find_title(text), cover_href=find_cover_href(text))


def read_package_document(path: Path) -> PackageInfo:
    """Read an OPF file from disk. Undecodable bytes are replaced, not fatal."""
    text = path.read_text(encoding="utf-8", errors="replace")
    return parse_package_text(text)
