"""Single-flight busy gate."""

from __future__ import annotations

import logging

LOGGER = logging.getLogger(__name__)


class ConcurrencyGate:
    """One shared busy flag: at most one pipeline run is in flight.

    Only the host's entry points (trigger, refresh, worker completion) write
    the flag, all from the host event loop, so no lock is needed.
    """

    def __init__(self) -> None:
        self._busy = False

    @property
    def is_busy(self) -> bool:
        return self._busy

    def try_acquire(self) -> bool:
        """Mark the gate busy; ``False`` if it already was."""
        if self._busy:
            return False
        self._busy = True
        LOGGER.debug("Gate busy")
        return True

    def release(self) -> None:
        if self._busy:
            LOGGER.debug("Gate idle")
        self._busy = False
