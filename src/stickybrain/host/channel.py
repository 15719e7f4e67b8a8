"""Host-side view of the results streamed back by the worker."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

from stickybrain.protocol import (
    ErrorMessage,
    IncrementalUpdateMessage,
    Message,
    PipelineResult,
    ResultMessage,
)

LOGGER = logging.getLogger(__name__)

Listener = Callable[[Message, PipelineResult | None], None]


class ResultChannel:
    """Merges incremental updates into the pending result for the current run."""

    def __init__(self) -> None:
        self.pending: PipelineResult | None = None
        self.complete = False
        self.last_error: str | None = None
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def start(self, paragraph: str) -> None:
        """Begin a new run; the previous run's partial result is discarded."""
        self.pending = PipelineResult(paragraph=paragraph)
        self.complete = False
        self.last_error = None

    def publish(self, message: Message) -> None:
        if isinstance(message, IncrementalUpdateMessage):
            if self.pending is None:
                self.pending = PipelineResult()
            self.pending.merge(message.update)
        elif isinstance(message, ResultMessage):
            paragraph = self.pending.paragraph if self.pending is not None else None
            self.pending = message.result
            if self.pending.paragraph is None:
                self.pending.paragraph = paragraph
            self.complete = True
        elif isinstance(message, ErrorMessage):
            LOGGER.error("Pipeline error: %s", message.message)
            self.last_error = message.message
        else:
            LOGGER.warning("Ignoring unexpected %s message from worker", message.type)
            return

        for listener in self._listeners:
            listener(message, self.pending)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "result": self.pending.to_wire() if self.pending is not None else None,
            "complete": self.complete,
            "error": self.last_error,
        }
