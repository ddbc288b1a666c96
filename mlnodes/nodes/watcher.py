"""Polling directory watcher.

Takes snapshots of the entries matching a glob pattern and reports what was
added, removed or modified between two polls. ``start`` runs the polling on a
daemon thread; tests call ``poll`` directly.
"""

import fnmatch
import os
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import structlog

logger = structlog.get_logger("nodes.watcher")

Snapshot = Dict[str, Tuple[int, int]]


@dataclass(frozen=True)
class DirectoryChange:
    """Entries that changed between two snapshots."""
    path: str
    added: Tuple[str, ...] = field(default_factory=tuple)
    removed: Tuple[str, ...] = field(default_factory=tuple)
    modified: Tuple[str, ...] = field(default_factory=tuple)

    def __bool__(self) -> bool:
        return bool(self.added or self.removed or self.modified)


class DirectoryWatcher:
    """Watches ``path`` for entries matching ``pattern``."""

    def __init__(self, path: str, pattern: str = "*", poll_interval: float = 1.0):
        self.path = path
        self.pattern = pattern
        self.poll_interval = poll_interval
        self._subscribers: List[Callable[[DirectoryChange], None]] = []
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._snapshot = self._take_snapshot()

    def _take_snapshot(self) -> Snapshot:
        snapshot: Snapshot = {}
        try:
            entries = list(os.scandir(self.path))
        except FileNotFoundError:
            return snapshot
        for entry in entries:
            if not fnmatch.fnmatch(entry.name, self.pattern):
                continue
            try:
                stat = entry.stat()
            except FileNotFoundError:
                continue
            snapshot[entry.name] = (stat.st_mtime_ns, stat.st_size)
        return snapshot

    def subscribe(self, callback: Callable[[DirectoryChange], None]) -> Callable[[], None]:
        """Register ``callback``; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def poll(self) -> Optional[DirectoryChange]:
        """Compare against the last snapshot and notify on change."""
        current = self._take_snapshot()
        previous, self._snapshot = self._snapshot, current

        change = DirectoryChange(
            path=self.path,
            added=tuple(sorted(set(current) - set(previous))),
            removed=tuple(sorted(set(previous) - set(current))),
            modified=tuple(sorted(
                name for name in set(current) & set(previous)
                if current[name] != previous[name]
            )),
        )
        if not change:
            return None

        logger.info(
            "Directory changed",
            path=self.path,
            added=list(change.added),
            removed=list(change.removed),
            modified=list(change.modified),
        )
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback(change)
        return change

    def _run(self) -> None:
        while not self._stop.wait(self.poll_interval):
            try:
                self.poll()
            except Exception as e:
                logger.error("Directory watcher poll failed", path=self.path, error=str(e))

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name=f"watch:{self.path}", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        # A subscriber may stop the watcher from inside its own poll thread.
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.poll_interval * 2)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
