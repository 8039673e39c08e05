"""Archive handling utilities for Shelf.

An EPUB is read as a plain zip archive. Decompression refuses entries that
would land outside the destination directory.
"""

from __future__ import annotations

import zipfile
import zlib
from pathlib import Path

from .errors import DecodeError


class EpubArchive:
    def __init__(self, path: Path):
        try:
            self.zf = zipfile.ZipFile(path, mode="r")
        except (zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
            raise DecodeError(f"Not a readable zip archive: {path}: {exc}") from exc

    def extract_all(self, dest: Path) -> Path:
        """Decompress every entry under dest and return dest."""
        dest = dest.resolve()
        for info in self.zf.infolist():
            target = (dest / info.filename).resolve()
            if target != dest and dest not in target.parents:
                raise DecodeError(f"Entry escapes extraction root: {info.filename}")
        try:
            self.zf.extractall(dest)
        except (zipfile.BadZipFile, zlib.error, EOFError, RuntimeError, ValueError) as exc:
            raise DecodeError(f"Corrupt archive entry: {exc}") from exc
        return dest

    def close(self) -> None:
        self.zf.close()

    def __enter__(self) -> "EpubArchive":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def get_archive(path: Path) -> EpubArchive:
    """Open an EPUB archive.

    Raises FileNotFoundError if the file is missing and DecodeError if it is
    not a zip archive.
    """
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return EpubArchive(path)
