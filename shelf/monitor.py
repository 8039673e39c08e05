"""Filesystem monitoring for Shelf.

Uses Watchdog to notice EPUBs being added, replaced, moved or removed in the
library folder and triggers a fresh scan pass for each burst of changes.
Passes run one at a time on a single worker thread.
"""

from __future__ import annotations

import queue
import time
from pathlib import Path
from threading import Event, Thread
from typing import Callable, Dict, NamedTuple, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .config import ShelfConfig
from .logging_config import get_logger
from .walker import is_epub_file

logger = get_logger(__name__)

BATCH_WINDOW = 1.0  # Seconds to wait for more events


class MonitorTask(NamedTuple):
    action: str
    path: Path
    dest_path: Optional[Path] = None


class LibraryHandler(FileSystemEventHandler):
    """Handle filesystem events and push them to a processing queue."""

    def __init__(self, task_queue: queue.Queue, debounce_seconds: int = 2):
        super().__init__()
        self.task_queue = task_queue
        self.debounce_seconds = debounce_seconds
        self._last_modified: Dict[str, float] = {}

    def on_created(self, event: FileSystemEvent) -> None:
        path = Path(event.src_path)
        if path.name.startswith("._"):
            return

        if event.is_directory:
            self.task_queue.put(MonitorTask("scan_folder", path))
        elif is_epub_file(path):
            self.task_queue.put(MonitorTask("added", path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        path = Path(event.src_path)
        if path.name.startswith("._"):
            return

        if event.is_directory or is_epub_file(path):
            self.task_queue.put(MonitorTask("removed", path))

    def on_moved(self, event: FileSystemEvent) -> None:
        src_path = Path(event.src_path)
        dest_path = Path(event.dest_path)

        if src_path.name.startswith("._") or dest_path.name.startswith("._"):
            return

        if event.is_directory or is_epub_file(src_path) or is_epub_file(dest_path):
            self.task_queue.put(MonitorTask("moved", src_path, dest_path=dest_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return

        path = Path(event.src_path)
        if path.name.startswith("._") or not is_epub_file(path):
            return

        # Simple debounce for files still being written
        now = time.time()
        key = str(path)
        last = self._last_modified.get(key, 0)
        if now - last < self.debounce_seconds:
            return

        self._last_modified[key] = now
        self.task_queue.put(MonitorTask("modified", path))

        # Prune stale entries to prevent unbounded growth
        cutoff = now - self.debounce_seconds * 2
        self._last_modified = {
            k: v for k, v in self._last_modified.items() if v > cutoff
        }


def optimize_tasks(tasks: list[MonitorTask]) -> list[MonitorTask]:
    """Drop repeated tasks, keeping first-seen order."""
    seen = set()
    optimized = []
    for task in tasks:
        if task in seen:
            continue
        seen.add(task)
        optimized.append(task)
    return optimized


def process_queue(
    task_queue: queue.Queue,
    rescan: Callable[[], None],
    stop_event: Event,
) -> None:
    """Worker loop: collect a burst of events, then run one scan pass."""
    while not stop_event.is_set():
        try:
            first_task = task_queue.get(timeout=1.0)
        except queue.Empty:
            continue

        batch = [first_task]
        start_time = time.time()

        while (time.time() - start_time) < BATCH_WINDOW:
            try:
                batch.append(task_queue.get_nowait())
            except queue.Empty:
                time.sleep(0.1)

        for _ in range(len(batch)):
            try:
                task_queue.task_done()
            except ValueError:
                pass

        tasks = optimize_tasks(batch)
        for task in tasks:
            logger.debug(f"[{task.action}] {task.path}")
        logger.info(f"[WATCH] {len(tasks)} library changes, rescanning")

        try:
            rescan()
        except Exception as e:
            logger.error(f"Error during rescan: {e}")


def start_file_monitoring(
    config: ShelfConfig,
    rescan: Callable[[], None],
) -> Optional[Observer]:
    """Start filesystem monitoring if enabled in config."""
    if not config.monitoring.enabled:
        return None

    library_path = config.library_path
    if not library_path.exists():
        logger.error(f"Library path does not exist: {library_path}")
        return None

    task_queue: queue.Queue = queue.Queue()
    stop_event = Event()

    worker = Thread(
        target=process_queue,
        args=(task_queue, rescan, stop_event),
        daemon=True,
        name="ShelfMonitorWorker",
    )
    worker.start()

    event_handler = LibraryHandler(task_queue, config.monitoring.debounce_seconds)

    observer = Observer()
    observer.schedule(event_handler, str(library_path), recursive=True)
    observer.start()

    return observer
