"""Detect finished thoughts in append-only notes."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Dict

from stickybrain.errors import ExtractionError
from stickybrain.ingestion.rtf_loader import extract_text
from stickybrain.models import DocumentSnapshot, TriggerEvent
from stickybrain.utils.text import ends_thought, last_paragraph

LOGGER = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.2


class ChangeDetector:
    """Tracks the last text of every note and emits a trigger when a sentence ends.

    A trigger fires only when new text was appended, the note now ends in a
    sentence terminator or newline, and ``gate`` is idle. Triggers seen while
    the gate is busy are dropped, not queued.
    """

    def __init__(
        self,
        gate,
        on_trigger: Callable[[TriggerEvent], None],
        *,
        extract: Callable[[Path], str] = extract_text,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.gate = gate
        self.on_trigger = on_trigger
        self.extract = extract
        self.debounce_seconds = debounce_seconds
        self._loop = loop
        self._snapshots: Dict[Path, DocumentSnapshot] = {}
        self._timers: Dict[Path, asyncio.TimerHandle] = {}

    def snapshot(self, path: Path) -> DocumentSnapshot | None:
        return self._snapshots.get(Path(path))

    def on_file_event(self, path: Path, kind: str) -> None:
        """Schedule `handle_change` once ``path`` has been quiet for the debounce period."""
        if kind not in ("add", "change"):
            return
        path = Path(path)
        loop = self._loop or asyncio.get_running_loop()
        pending = self._timers.pop(path, None)
        if pending is not None:
            pending.cancel()
        self._timers[path] = loop.call_later(self.debounce_seconds, self._fire, path)

    def _fire(self, path: Path) -> None:
        self._timers.pop(path, None)
        self.handle_change(path)

    def handle_change(self, path: Path) -> TriggerEvent | None:
        path = Path(path)
        try:
            text = self.extract(path)
        except ExtractionError as exc:
            LOGGER.error("Skipping %s: %s", path, exc)
            return None

        previous = self._snapshots.get(path)
        previous_text = previous.last_text if previous is not None else ""
        self._snapshots[path] = DocumentSnapshot(path=path, last_text=text)

        diff = text[len(previous_text):]
        if not diff:
            return None
        LOGGER.debug("%s: %d new chars", path, len(diff))

        if not ends_thought(text):
            return None

        if self.gate.is_busy:
            LOGGER.debug("Gate busy, dropping trigger from %s", path)
            return None

        event = TriggerEvent(text=last_paragraph(text), source_path=path)
        LOGGER.info("Thought finished in %s", path)
        self.on_trigger(event)
        return event

    def cancel_pending(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
