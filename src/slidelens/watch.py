"""Watch a slide directory and keep the index in sync."""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from slidelens.index.indexer import Indexer
from slidelens.utils.files import document_key, is_ignored

LOGGER = logging.getLogger(__name__)

# (event type, absolute path)
WatchEvent = tuple[str, Path]


class SlideWatcher(FileSystemEventHandler):
    """Queue Markdown change events, at most one per path at a time.

    Observer threads only enqueue. A path stays in ``in_flight`` from the moment
    it is queued until its indexing pass finishes; further events for that
    path are dropped meanwhile.
    """

    def __init__(self, watch_dir: Path) -> None:
        self.watch_dir = Path(watch_dir).resolve()
        self.events: "queue.Queue[WatchEvent]" = queue.Queue()
        self.in_flight: set[Path] = set()
        self._lock = threading.Lock()

    def _accepts(self, path: Path) -> bool:
        if path.suffix.lower() != ".md":
            return False
        try:
            relative = path.relative_to(self.watch_dir)
        except ValueError:
            return False
        return not is_ignored(relative)

    def submit(self, event_type: str, path: Path) -> bool:
        path = Path(path).resolve()
        if not self._accepts(path):
            return False
        with self._lock:
            if path in self.in_flight:
                LOGGER.debug("Already queued, ignoring %s event for %s", event_type, path)
                return False
            self.in_flight.add(path)
        self.events.put((event_type, path))
        return True

    def done(self, path: Path) -> None:
        with self._lock:
            self.in_flight.discard(path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.submit("add", Path(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.submit("change", Path(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.submit("unlink", Path(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self.submit("unlink", Path(event.src_path))
        self.submit("add", Path(event.dest_path))


def process_event(
    indexer: Indexer,
    event: WatchEvent,
    *,
    base_dir: Path,
    with_images: bool = False,
) -> str:
    """Apply one watch event to the store and return a short status."""
    event_type, path = event
    key = document_key(path, base_dir)
    if event_type == "unlink" or not path.exists():
        removed = indexer.store.delete_document(key)
        return "removed" if removed else "missing"

    stats = asyncio.run(indexer.index([path], base_dir=base_dir, with_images=with_images))
    if stats.skipped:
        return "unchanged"
    if stats.empty:
        return "empty"
    if stats.failed:
        return "failed"
    return f"indexed {stats.slides} slides"


def watch_directory(
    indexer: Indexer,
    watch_dir: Path,
    *,
    with_images: bool = False,
    on_event: Optional[Callable[[WatchEvent, str], None]] = None,
    stop: Optional[threading.Event] = None,
    poll_interval: float = 0.5,
) -> None:
    """Block until ``stop`` is set, re-indexing files as they change."""
    watcher = SlideWatcher(watch_dir)
    observer = Observer()
    observer.schedule(watcher, str(watcher.watch_dir), recursive=True)
    observer.start()
    stop = stop or threading.Event()
    LOGGER.info("Watching %s", watcher.watch_dir)

    try:
        while not stop.is_set():
            try:
                event = watcher.events.get(timeout=poll_interval)
            except queue.Empty:
                continue
            try:
                status = process_event(
                    indexer, event, base_dir=watcher.watch_dir, with_images=with_images
                )
            except Exception as exc:
                LOGGER.error("Failed to process %s: %s", event[1], exc)
                status = f"error: {exc}"
            finally:
                watcher.done(event[1])
            if on_event is not None:
                on_event(event, status)
    finally:
        observer.stop()
        observer.join()
