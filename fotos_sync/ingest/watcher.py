"""Filesystem watcher feeding the ingestion pipeline."""

import logging
import os
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from fotos_sync.utils.file_utils import is_hidden
from fotos_sync.utils.timers import DeadlineTimers

logger = logging.getLogger(__name__)


class DebouncedFileHandler(FileSystemEventHandler):
    """Coalesces bursts of events for one path into a single callback.

    A create (or a rename into the directory) starts a debounce timer for the
    path; further modifications of that path restart it.
    """

    def __init__(self, root: str, on_file: Callable[[str], None], debounce: float = 1.0):
        super().__init__()
        self.root = root
        self.on_file = on_file
        self.debounce = debounce
        self.timers = DeadlineTimers()

    def _ignored(self, path: str) -> bool:
        return is_hidden(os.path.relpath(path, self.root))

    def _schedule(self, path: str) -> None:
        if self._ignored(path):
            return
        self.timers.schedule(path, self.debounce, self._fire)

    def _fire(self, path: str) -> None:
        try:
            self.on_file(path)
        except Exception:
            logger.exception("Error handling %s", path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._schedule(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._schedule(event.dest_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory and event.src_path in self.timers:
            self._schedule(event.src_path)


class DirectoryWatcher:
    """Watches one directory tree and reports new files after a debounce."""

    def __init__(
        self,
        directory: str,
        on_file: Callable[[str], None],
        debounce: float = 1.0,
        observer_factory: Callable[[], Observer] = Observer,
    ):
        self.directory = os.path.abspath(directory)
        self.handler = DebouncedFileHandler(self.directory, on_file, debounce)
        self._observer_factory = observer_factory
        self._observer = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        """Start watching.

        Raises:
            OSError: If the directory cannot be watched
        """
        if self._observer is not None:
            return
        observer = self._observer_factory()
        observer.schedule(self.handler, self.directory, recursive=True)
        observer.start()
        self._observer = observer
        logger.info("Watching %s", self.directory)

    def stop(self) -> None:
        """Stop watching and drop any debounced events not yet fired."""
        observer, self._observer = self._observer, None
        self.handler.timers.cancel_all()
        if observer is None:
            return
        observer.stop()
        observer.join(timeout=5)
        logger.info("Stopped watching %s", self.directory)
