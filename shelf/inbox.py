"""Pending book hand-off for Shelf.

A book can arrive (shared from another app, dropped by the host shell) before
anything is ready to open it. It waits here in a single slot until the first
reader takes it; taking empties the slot.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Optional

from pydantic import BaseModel, Field

from .logging_config import get_logger

logger = get_logger(__name__)


class PendingBook(BaseModel):
    path: Path
    title: Optional[str] = None
    received_at: datetime = Field(default_factory=datetime.now)


class PendingBookInbox:
    """Single-capacity inbox. A newer book replaces one nobody has taken yet."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._slot: Optional[PendingBook] = None

    def put(self, book: PendingBook) -> Optional[PendingBook]:
        """Store a book and return the one it displaced, if any."""
        with self._lock:
            displaced, self._slot = self._slot, book
        if displaced is not None:
            logger.info(f"Pending book {displaced.path.name} replaced by {book.path.name}")
        return displaced

    def take(self) -> Optional[PendingBook]:
        """Remove and return the pending book; only one caller ever gets it."""
        with self._lock:
            book, self._slot = self._slot, None
        return book

    def __bool__(self) -> bool:
        with self._lock:
            return self._slot is not None
