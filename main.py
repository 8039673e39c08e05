"""Shelf CLI entry point."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

import typer

from shelf.config import DEFAULT_CONFIG_PATH, ShelfConfig, load_config, write_config
from shelf.covers import cleanup_cache
from shelf.duplicates import group
from shelf.errors import ScanError
from shelf.logging_config import setup_logging
from shelf.models import ScanResult
from shelf.monitor import start_file_monitoring
from shelf.scanner import check_library, import_book, scan_library
from shelf.walker import walk


__version__ = "0.1.0"

app = typer.Typer(add_completion=False, help="Shelf EPUB library CLI")
logger = logging.getLogger("shelf")


def _ensure_config() -> ShelfConfig:
    try:
        return load_config()
    except FileNotFoundError:
        typer.echo("[ERROR] config.ini not found. Run: shelf init --library /path/to/books")
        raise typer.Exit(code=1)


def _scan_or_exit(config: ShelfConfig, permission_granted: Optional[bool] = None) -> ScanResult:
    try:
        return scan_library(config, permission_granted=permission_granted)
    except ScanError as exc:
        typer.echo(f"[ERROR] {exc}")
        raise typer.Exit(code=1)


@app.command()
def init(
    library: Path = typer.Option(..., "--library", help="Path to your EPUB folder"),
    name: str = typer.Option("My Library", "--name", help="Library name"),
) -> None:
    """Initialize config.ini with default settings."""
    config_path = DEFAULT_CONFIG_PATH
    write_config(config_path, library, name)
    typer.echo(f"[OK] Config created at {config_path}")


@app.command()
def scan(
    depth: Optional[int] = typer.Option(None, "--depth", help="Override scan depth"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every book"),
) -> None:
    """Scan the library, remove duplicates and list books."""
    config = _ensure_config()
    setup_logging(config.data_dir, "DEBUG" if verbose else "INFO")
    if depth is not None:
        config.scanner.max_depth = depth
    result = _scan_or_exit(config)

    for book in result.books:
        cover = "✓" if book.cover_path else "✗"
        typer.echo(f"  {cover} {book.title}  ({book.path.name})")

    typer.echo(
        "✓ Scan completed: "
        f"{len(result.books)} books, "
        f"{result.duplicates_removed} duplicates removed, "
        f"{result.failed} failed."
    )


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Server host"),
    port: Optional[int] = typer.Option(None, "--port", help="Server port"),
    no_watch: bool = typer.Option(False, "--no-watch", help="Disable file monitoring"),
) -> None:
    """Start the library API with optional file monitoring."""
    from shelf import api

    config = _ensure_config()
    setup_logging(config.data_dir)
    logger.info("Running initial library scan...")
    api.app.state.last_scan = _scan_or_exit(config)

    observer = None
    if not no_watch and config.monitoring.enabled:
        observer = start_file_monitoring(config, lambda: api.refresh(config))
    elif no_watch:
        logger.info("File monitoring disabled")

    try:
        api.run_server(config, host=host, port=port, monitoring_enabled=observer is not None)
    except KeyboardInterrupt:
        pass
    finally:
        if observer:
            observer.stop()
            observer.join()


@app.command()
def watch() -> None:
    """Rescan whenever EPUBs change in the library folder."""
    config = _ensure_config()
    setup_logging(config.data_dir)
    config.monitoring.enabled = True

    def _rescan() -> None:
        try:
            result = scan_library(config)
        except ScanError as exc:
            logger.error(f"Rescan skipped: {exc}")
            return
        logger.info(
            f"Scan complete: {len(result.books)} books, "
            f"{result.duplicates_removed} duplicates removed, {result.failed} failed."
        )

    _rescan()
    observer = start_file_monitoring(config, _rescan)
    if observer is None:
        raise typer.Exit(code=1)

    try:
        while observer.is_alive():
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        observer.stop()
        observer.join()


@app.command("import")
def import_(
    source: Path = typer.Argument(..., help="EPUB file to copy into the library"),
) -> None:
    """Copy an EPUB into the library folder."""
    config = _ensure_config()
    setup_logging(config.data_dir)
    try:
        target = import_book(source, config)
    except (ScanError, FileNotFoundError, ValueError) as exc:
        typer.echo(f"[ERROR] {exc}")
        raise typer.Exit(code=1)

    typer.echo(f"[OK] Imported {source.name} as {target}")


@app.command()
def cleanup() -> None:
    """Remove cached covers and leftover scratch directories."""
    config = _ensure_config()
    deleted = cleanup_cache(config)
    typer.echo(f"[INFO] Removed {deleted} cached files")


@app.command()
def stats() -> None:
    """Show library statistics without changing any file."""
    config = _ensure_config()
    try:
        root = check_library(config)
    except ScanError as exc:
        typer.echo(f"[ERROR] {exc}")
        raise typer.Exit(code=1)

    candidates = walk(root, config.scanner.max_depth, config.scanner.ignore_patterns)
    groups = group(candidates)
    extra_copies = sum(len(members) - 1 for members in groups.values())
    size_mb = sum(c.size for c in candidates) / (1024 ** 2)

    typer.echo("Library Statistics:")
    typer.echo(f"  EPUB files: {len(candidates)}")
    typer.echo(f"  Distinct books: {len(candidates) - extra_copies}")
    typer.echo(f"  Total size: {size_mb:.1f} MB")
    typer.echo(f"  Duplicate copies: {extra_copies} (removed by the next scan)")


if __name__ == "__main__":
    app()
