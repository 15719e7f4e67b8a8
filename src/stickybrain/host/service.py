"""The host: watcher, detector, gate and worker wired onto one event loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

from stickybrain.config import AppConfig
from stickybrain.host.channel import ResultChannel
from stickybrain.host.gate import ConcurrencyGate
from stickybrain.host.supervisor import WorkerExit, WorkerSupervisor
from stickybrain.models import TriggerEvent
from stickybrain.protocol import ErrorMessage, ResultMessage, RunMessage
from stickybrain.watch.detector import ChangeDetector
from stickybrain.watch.watcher import DirectoryWatcher

LOGGER = logging.getLogger(__name__)

TICK_SECONDS = 0.05


class Host:
    """Accepts triggers, runs one worker at a time and collects its results."""

    def __init__(
        self,
        config: AppConfig,
        *,
        gate: ConcurrencyGate | None = None,
        supervisor: WorkerSupervisor | None = None,
        channel: ResultChannel | None = None,
        log_level: int = logging.INFO,
    ) -> None:
        self.config = config
        self.gate = gate or ConcurrencyGate()
        self.supervisor = supervisor or WorkerSupervisor(config, log_level=log_level)
        self.channel = channel or ResultChannel()
        self.detector = ChangeDetector(
            self.gate, self.on_trigger, debounce_seconds=config.debounce_seconds
        )
        self.watcher = DirectoryWatcher(config.watch_dir, self.detector.on_file_event)
        self.last_trigger: TriggerEvent | None = None
        self._task: asyncio.Task | None = None

    def on_trigger(self, event: TriggerEvent) -> bool:
        """Automatic entry: start a run unless one is already in flight."""
        if not self.gate.try_acquire():
            LOGGER.debug("Trigger from %s dropped, pipeline busy", event.source_path)
            return False
        self.last_trigger = event
        self.channel.start(event.text)
        try:
            request = RunMessage(
                paragraph=event.text,
                source_path=str(event.source_path),
                user_goals=self.config.load_goals(),
            )
            self.supervisor.supersede(request)
        except Exception as exc:
            LOGGER.error("Could not start pipeline worker: %s", exc)
            self.channel.publish(ErrorMessage(message=f"could not start worker: {exc}"))
            self.gate.release()
            return False
        return True

    def refresh(self) -> bool:
        """Manual entry: clear the gate and re-run the last accepted paragraph."""
        self.gate.release()
        if self.last_trigger is None:
            LOGGER.info("Refresh requested but no paragraph has been captured yet")
            return False
        return self.on_trigger(self.last_trigger)

    def pump(self) -> None:
        """Forward worker messages to the channel; release the gate when the run ends."""
        for event in self.supervisor.poll():
            if isinstance(event, WorkerExit):
                self.gate.release()
                continue
            self.channel.publish(event)
            if isinstance(event, (ResultMessage, ErrorMessage)):
                self.gate.release()

    def status(self) -> Dict[str, Any]:
        return {
            "busy": self.gate.is_busy,
            "worker_running": self.supervisor.is_running,
            "worker_pid": self.supervisor.pid,
            "watch_dir": str(self.config.watch_dir),
            "last_paragraph": self.last_trigger.text if self.last_trigger else None,
        }

    async def run_forever(self, *, tick: float = TICK_SECONDS) -> None:
        loop = asyncio.get_running_loop()
        next_scan = 0.0
        LOGGER.info("Host watching %s", self.config.watch_dir)
        try:
            while True:
                now = loop.time()
                if now >= next_scan:
                    self.watcher.scan()
                    next_scan = now + self.config.poll_interval
                self.pump()
                await asyncio.sleep(tick)
        finally:
            self.shutdown()

    def start(self) -> asyncio.Task:
        """Run the host in the background on the current event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def shutdown(self) -> None:
        self.detector.cancel_pending()
        self.supervisor.kill()
