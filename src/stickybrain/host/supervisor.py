"""Worker process lifecycle: spawn, supersede, kill, detect crashes."""

from __future__ import annotations

import logging
import multiprocessing
from dataclasses import dataclass
from typing import Callable, List, Union

from stickybrain.errors import WorkerCrash
from stickybrain.host.worker import worker_main
from stickybrain.protocol import ErrorMessage, Message, ResultMessage, RunMessage, parse_message

LOGGER = logging.getLogger(__name__)

JOIN_TIMEOUT = 1.0


@dataclass(frozen=True, slots=True)
class WorkerExit:
    exitcode: int | None


WorkerEvent = Union[Message, WorkerExit]


class WorkerSupervisor:
    """Owns the single live worker process and its pipe.

    Starting a worker always kills the previous one first; nothing from a
    killed worker is ever read again.
    """

    def __init__(
        self,
        config,
        *,
        target: Callable[..., None] = worker_main,
        log_level: int = logging.INFO,
        start_method: str = "spawn",
    ) -> None:
        self.config = config
        self.target = target
        self.log_level = log_level
        self._ctx = multiprocessing.get_context(start_method)
        self._process = None
        self._conn = None
        self._finished = False

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.is_alive()

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    def supersede(self, request: RunMessage) -> None:
        """Kill any running worker, start a new one and send it ``request``."""
        self.kill()
        parent_conn, child_conn = self._ctx.Pipe()
        process = self._ctx.Process(
            target=self.target,
            args=(child_conn, self.config, self.log_level),
            name="stickybrain-worker",
            daemon=True,
        )
        process.start()
        child_conn.close()
        self._process, self._conn, self._finished = process, parent_conn, False
        parent_conn.send(request.to_wire())
        LOGGER.info("Started worker pid %s", process.pid)

    def kill(self) -> None:
        if self._process is None:
            return
        if self._process.is_alive():
            LOGGER.info("Killing worker pid %s", self._process.pid)
            self._process.kill()
        self._process.join(JOIN_TIMEOUT)
        self._conn.close()
        self._process = self._conn = None

    def poll(self) -> List[WorkerEvent]:
        """Drain pending messages; report the worker's exit once it is gone.

        A worker that exits before sending ``result`` or ``error`` yields a
        synthetic `ErrorMessage` ahead of its `WorkerExit`.
        """
        if self._process is None:
            return []
        alive = self._process.is_alive()
        events: List[WorkerEvent] = []
        try:
            while self._conn.poll():
                message = parse_message(self._conn.recv())
                if isinstance(message, (ResultMessage, ErrorMessage)):
                    self._finished = True
                events.append(message)
        except (EOFError, OSError):
            alive = False

        if not alive:
            self._process.join(JOIN_TIMEOUT)
            exitcode = self._process.exitcode
            if not self._finished:
                crash = WorkerCrash(exitcode)
                LOGGER.error("%s", crash)
                events.append(ErrorMessage(message=str(crash)))
            events.append(WorkerExit(exitcode))
            self._conn.close()
            self._process = self._conn = None
        return events
