"""FastAPI app for Shelf.

Exposes the library index to UI collaborators:
- GET    /api/books                 (last scan; scans on first call or ?rescan=true)
- POST   /api/scan
- GET    /api/books/{key}/cover
- POST   /api/books/{key}/open
- DELETE /api/books/{key}
- POST   /api/pending               (store a pending book)
- GET    /api/pending               (take the pending book)

Books are addressed by a short key derived from their scan id, since ids
embed filesystem paths.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from threading import Lock
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException, Query, Response
from fastapi.responses import FileResponse
from pydantic import BaseModel

from .config import ShelfConfig, get_config
from .errors import LibraryNotFoundError, PermissionDeniedError
from .inbox import PendingBook, PendingBookInbox
from .logging_config import get_logger
from .models import BookDescriptor, ScanResult
from .scanner import delete_books, open_book, scan_library

logger = get_logger(__name__)


class PendingBookRequest(BaseModel):
    path: str
    title: Optional[str] = None


def _info(msg: str) -> None:
    logger.info(msg)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    async def _print_startup_messages():
        await asyncio.sleep(0.1)
        _info("Started server process [" + str(os.getpid()) + "]")
        api_url = getattr(app.state, "api_url", None)
        if api_url:
            _info("Library API available at: " + api_url)
        if getattr(app.state, "monitoring_enabled", False):
            _info("File monitoring enabled")

    asyncio.create_task(_print_startup_messages())
    yield


app = FastAPI(title="Shelf", lifespan=_lifespan)
app.state.last_scan = None
app.state.inbox = PendingBookInbox()
# Default renderer hand-off: report the uri back to the client.
app.state.opener = lambda uri: uri

_scan_lock = Lock()


def book_key(book: BookDescriptor) -> str:
    return hashlib.sha1(book.id.encode("utf-8")).hexdigest()[:16]


def _book_payload(book: BookDescriptor) -> dict:
    return {**book.to_public(), "key": book_key(book)}


def _run_scan(config: ShelfConfig) -> ScanResult:
    """Run one pass; refuse to start a second while one is in flight."""
    if not _scan_lock.acquire(blocking=False):
        raise HTTPException(status_code=409, detail="A scan is already running")
    try:
        result = scan_library(config)
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=403, detail=str(exc))
    except LibraryNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    finally:
        _scan_lock.release()

    app.state.last_scan = result
    logger.info(
        f"Scan complete: {len(result.books)} books, "
        f"{result.duplicates_removed} duplicates removed, {result.failed} failed."
    )
    return result


def refresh(config: ShelfConfig) -> None:
    """Rescan for the file monitor, waiting for any pass already running."""
    with _scan_lock:
        try:
            app.state.last_scan = scan_library(config)
        except (PermissionDeniedError, LibraryNotFoundError) as exc:
            logger.error(f"Rescan skipped: {exc}")


def _current_scan() -> ScanResult:
    result = app.state.last_scan
    if result is None:
        result = _run_scan(get_config())
    return result


def _get_book(key: str) -> BookDescriptor:
    result = _current_scan()
    book = next((b for b in result.books if book_key(b) == key), None)
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found")
    return book


@app.get("/favicon.ico", include_in_schema=False)
def favicon() -> Response:
    return Response(status_code=204)


@app.get("/api/books")
def list_books(rescan: bool = Query(False)) -> list[dict]:
    result = _run_scan(get_config()) if rescan else _current_scan()
    return [_book_payload(b) for b in result.books]


@app.post("/api/scan")
def run_scan() -> dict:
    result = _run_scan(get_config())
    return {
        "books": len(result.books),
        "duplicates_removed": result.duplicates_removed,
        "failed": result.failed,
    }


@app.get("/api/books/{key}/cover")
def get_cover(key: str):
    book = _get_book(key)
    if book.cover_path is None or not book.cover_path.exists():
        raise HTTPException(status_code=404, detail="Cover not available")
    return FileResponse(book.cover_path)


@app.post("/api/books/{key}/open")
def open_book_route(key: str) -> dict:
    book = _get_book(key)
    opener: Callable[[str], object] = app.state.opener
    try:
        handed_off = open_book(book, opener)
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return {"uri": book.uri, "result": handed_off}


@app.delete("/api/books/{key}")
def delete_book(key: str) -> dict:
    book = _get_book(key)
    deleted, failed = delete_books([book])
    if failed:
        raise HTTPException(status_code=500, detail=f"Failed to delete {book.path.name}")
    result: ScanResult = app.state.last_scan
    result.books = [b for b in result.books if b.id != book.id]
    return {"deleted": deleted}


@app.post("/api/pending", status_code=202)
def put_pending(request: PendingBookRequest) -> dict:
    pending = PendingBook(path=Path(request.path), title=request.title)
    displaced = app.state.inbox.put(pending)
    return {"queued": str(pending.path), "replaced": str(displaced.path) if displaced else None}


@app.get("/api/pending")
def take_pending():
    pending = app.state.inbox.take()
    if pending is None:
        return Response(status_code=204)
    return {
        "path": str(pending.path),
        "title": pending.title,
        "received_at": pending.received_at.isoformat(timespec="seconds"),
    }


class _UvicornStartupFilter(logging.Filter):
    """Suppress uvicorn startup messages; we print our own in lifespan."""

    def filter(self, record: logging.LogRecord) -> bool:
        msg = str(getattr(record, "msg", ""))
        if "Started server process" in msg:
            return False
        if "Waiting for application startup" in msg:
            return False
        if "Application startup complete" in msg:
            return False
        return True


def run_server(
    config: ShelfConfig,
    host: Optional[str],
    port: Optional[int],
    monitoring_enabled: bool = False,
) -> None:
    """Run the FastAPI app with Uvicorn."""
    import uvicorn

    effective_host = host or config.server_host
    effective_port = port or config.server_port

    app.state.api_url = f"http://{effective_host}:{effective_port}/api/books"
    app.state.monitoring_enabled = monitoring_enabled

    startup_filter = _UvicornStartupFilter()
    for name in ("uvicorn", "uvicorn.error", "uvicorn.lifespan"):
        logging.getLogger(name).addFilter(startup_filter)

    uvicorn.run(
        app,
        host=effective_host,
        port=effective_port,
        log_level="info",
        log_config=None,
    )
