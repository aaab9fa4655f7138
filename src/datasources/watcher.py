from __future__ import annotations

"""Polling file watcher with debounced change notifications."""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Iterable

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[str, str], Awaitable[None]]
Snapshot = dict[str, tuple[int, int]]


class Debouncer:
    """Collapse bursts of triggers into one callback after a quiet period."""
    def __init__(self, delay: float, callback: ChangeCallback) -> None:
        self.delay = delay
        self.callback = callback
        self._pending: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def trigger(self, event: str, path: str) -> None:
        """Restart the quiet period; only the latest event is delivered."""
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = asyncio.get_running_loop().create_task(self._fire(event, path))

    async def _fire(self, event: str, path: str) -> None:
        await asyncio.sleep(self.delay)
        try:
            await self.callback(event, path)
        except Exception:
            logger.exception("watch_refresh_failed", extra={"event": event, "path": path})

    def cancel(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None


class DirectoryWatcher:
    """Detect added, changed and removed files by polling their stat snapshot."""
    def __init__(
        self,
        root: Path,
        extensions: Iterable[str],
        callback: ChangeCallback,
        recursive: bool = False,
        debounce: float = 2.0,
        poll_interval: float = 1.0,
    ) -> None:
        self.root = root
        self.extensions = {ext.lower() for ext in extensions}
        self.recursive = recursive
        self.poll_interval = poll_interval
        self.debouncer = Debouncer(debounce, callback)
        self._snapshot: Snapshot = {}
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def snapshot(self) -> Snapshot:
        """Return ``{path: (mtime_ns, size)}`` for every watched file."""
        if self.root.is_file():
            candidates: Iterable[Path] = [self.root]
        elif self.recursive:
            candidates = self.root.rglob("*")
        else:
            candidates = self.root.glob("*")
        state: Snapshot = {}
        for path in candidates:
            if path.suffix.lower() not in self.extensions:
                continue
            try:
                stat = path.stat()
            except OSError:
                continue
            if path.is_file():
                state[str(path)] = (stat.st_mtime_ns, stat.st_size)
        return state

    def diff(self, current: Snapshot) -> list[tuple[str, str]]:
        """Compare ``current`` with the last snapshot and remember it."""
        previous = self._snapshot
        changes: list[tuple[str, str]] = []
        for path, signature in current.items():
            if path not in previous:
                changes.append(("added", path))
            elif previous[path] != signature:
                changes.append(("changed", path))
        for path in previous:
            if path not in current:
                changes.append(("removed", path))
        self._snapshot = current
        return changes

    def start(self) -> None:
        if self.running:
            return
        self._snapshot = self.snapshot()
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("watch_started", extra={"path": str(self.root)})

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            current = await asyncio.to_thread(self.snapshot)
            for event, path in self.diff(current):
                logger.info("watch_refresh_triggered", extra={"event": event, "path": path})
                self.debouncer.trigger(event, path)

    async def stop(self) -> None:
        self.debouncer.cancel()
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("watch_stopped", extra={"path": str(self.root)})
