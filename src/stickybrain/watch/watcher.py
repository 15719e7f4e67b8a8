"""Polling directory watcher.

Stickies rewrites ``TXT.rtf`` inside sandboxed bundles, where native change
notifications are unreliable, so the watcher compares modification times on
a fixed interval instead.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, List, Tuple

from stickybrain.utils.files import iter_watch_targets

LOGGER = logging.getLogger(__name__)

FileEvent = Tuple[Path, str]


class DirectoryWatcher:
    """Reports ``add``, ``change`` and ``unlink`` events for notes under ``root``."""

    def __init__(self, root: Path, on_event: Callable[[Path, str], None]) -> None:
        self.root = Path(root)
        self.on_event = on_event
        self._mtimes: Dict[Path, float] | None = None

    def _stat_all(self) -> Dict[Path, float]:
        mtimes: Dict[Path, float] = {}
        if not self.root.exists():
            return mtimes
        for path in iter_watch_targets(self.root):
            try:
                mtimes[path] = path.stat().st_mtime
            except OSError:
                continue
        return mtimes

    def scan(self) -> List[FileEvent]:
        """Compare against the previous scan and dispatch events.

        The first scan only records a baseline.
        """
        current = self._stat_all()
        if self._mtimes is None:
            self._mtimes = current
            LOGGER.info("Watching %d notes under %s", len(current), self.root)
            return []

        events: List[FileEvent] = []
        for path, mtime in current.items():
            previous = self._mtimes.get(path)
            if previous is None:
                events.append((path, "add"))
            elif mtime != previous:
                events.append((path, "change"))
        for path in self._mtimes.keys() - current.keys():
            events.append((path, "unlink"))
        self._mtimes = current

        for path, kind in events:
            LOGGER.debug("fs event %s %s", kind, path)
            self.on_event(path, kind)
        return events
