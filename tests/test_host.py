"""Tests for the worker supervisor, result channel and host."""

from __future__ import annotations

import asyncio
from collections import deque
from pathlib import Path
from unittest.mock import MagicMock, Mock

import pytest

from stickybrain.config import AppConfig
from stickybrain.host.channel import ResultChannel
from stickybrain.host.service import Host
from stickybrain.host.supervisor import WorkerExit, WorkerSupervisor
from stickybrain.models import TriggerEvent
from stickybrain.protocol import (
    ErrorMessage,
    IncrementalUpdateMessage,
    PipelineResult,
    ResultMessage,
    RunMessage,
    Snippet,
)


class FakeConn:
    def __init__(self) -> None:
        self.incoming: deque = deque()
        self.sent: list = []
        self.closed = False
        self.eof = False

    def poll(self) -> bool:
        if self.eof and not self.incoming:
            raise EOFError
        return bool(self.incoming)

    def recv(self):
        return self.incoming.popleft()

    def send(self, payload) -> None:
        self.sent.append(payload)

    def close(self) -> None:
        self.closed = True


class FakeProcess:
    def __init__(self, target, args, name, daemon) -> None:
        self.target = target
        self.args = args
        self.alive = False
        self.exitcode = None
        self.pid = 4242
        self.killed = False

    def start(self) -> None:
        self.alive = True

    def is_alive(self) -> bool:
        return self.alive

    def kill(self) -> None:
        self.killed = True
        self.alive = False
        self.exitcode = -9

    def join(self, timeout=None) -> None:
        pass


class FakeContext:
    """Stands in for a multiprocessing context."""

    def __init__(self) -> None:
        self.processes: list[FakeProcess] = []
        self.conns: list[FakeConn] = []

    def Pipe(self):
        parent, child = FakeConn(), FakeConn()
        self.conns.append(parent)
        return parent, child

    def Process(self, target, args, name, daemon):
        process = FakeProcess(target, args, name, daemon)
        self.processes.append(process)
        return process


def _supervisor(tmp_path: Path) -> tuple[WorkerSupervisor, FakeContext]:
    supervisor = WorkerSupervisor(AppConfig(watch_dir=tmp_path), target=Mock())
    context = FakeContext()
    supervisor._ctx = context
    return supervisor, context


def _request(text: str = "Ideas for app X.") -> RunMessage:
    return RunMessage(paragraph=text, source_path="/notes/a.md")


class TestWorkerSupervisor:
    """Test worker lifecycle management."""

    def test_supersede_starts_worker(self, tmp_path: Path) -> None:
        """Should start a process and send it the request."""
        supervisor, context = _supervisor(tmp_path)

        supervisor.supersede(_request())

        assert supervisor.is_running
        assert supervisor.pid == 4242
        assert context.conns[0].sent == [_request().to_wire()]

    def test_supersede_kills_previous(self, tmp_path: Path) -> None:
        """Starting a new run kills the old worker and drops its pipe."""
        supervisor, context = _supervisor(tmp_path)
        supervisor.supersede(_request("first."))
        context.conns[0].incoming.append({"type": "error", "message": "stale"})

        supervisor.supersede(_request("second."))

        assert context.processes[0].killed
        assert context.conns[0].closed
        assert supervisor.poll() == []

    def test_poll_result_then_exit(self, tmp_path: Path) -> None:
        """A finished worker reports its result then its exit."""
        supervisor, context = _supervisor(tmp_path)
        supervisor.supersede(_request())
        conn, process = context.conns[0], context.processes[0]
        conn.incoming.append({"type": "incremental-update", "update": {"summary": "s"}})
        conn.incoming.append({"type": "result", "result": {"summary": "s"}})

        first = supervisor.poll()
        process.alive, process.exitcode = False, 0
        second = supervisor.poll()

        assert isinstance(first[0], IncrementalUpdateMessage)
        assert isinstance(first[1], ResultMessage)
        assert second == [WorkerExit(0)]
        assert not supervisor.is_running

    def test_crash_reported(self, tmp_path: Path) -> None:
        """A worker that dies without a result produces an error."""
        supervisor, context = _supervisor(tmp_path)
        supervisor.supersede(_request())
        process = context.processes[0]
        process.alive, process.exitcode = False, 1

        events = supervisor.poll()

        assert isinstance(events[0], ErrorMessage)
        assert "exit code 1" in events[0].message
        assert events[1] == WorkerExit(1)

    def test_broken_pipe_treated_as_exit(self, tmp_path: Path) -> None:
        """EOF on the pipe means the worker is gone."""
        supervisor, context = _supervisor(tmp_path)
        supervisor.supersede(_request())
        context.conns[0].eof = True

        events = supervisor.poll()

        assert isinstance(events[-1], WorkerExit)
        assert supervisor.poll() == []

    def test_poll_without_worker(self, tmp_path: Path) -> None:
        """Nothing to report before the first run."""
        supervisor, _ = _supervisor(tmp_path)

        assert supervisor.poll() == []
        supervisor.kill()


class TestResultChannel:
    """Test merging worker messages."""

    def test_incremental_then_result(self) -> None:
        """Updates merge; the final result replaces them and keeps the paragraph."""
        channel = ResultChannel()
        listener = Mock()
        channel.subscribe(listener)
        snippet = Snippet(id="a", title="t", content="c", similarity=0.9, source_path="/a")

        channel.start("Ideas for app X.")
        channel.publish(IncrementalUpdateMessage(update=PipelineResult(snippets=[snippet], summary="s")))
        channel.publish(IncrementalUpdateMessage(update=PipelineResult(web_search_prompt="q")))

        assert channel.pending.summary == "s"
        assert channel.pending.web_search_prompt == "q"
        assert not channel.complete

        channel.publish(ResultMessage(result=PipelineResult(summary="final")))

        assert channel.complete
        assert channel.pending.summary == "final"
        assert channel.pending.paragraph == "Ideas for app X."
        assert listener.call_count == 3

    def test_error(self) -> None:
        """Errors are recorded in the snapshot."""
        channel = ResultChannel()
        channel.start("p")

        channel.publish(ErrorMessage(message="boom"))

        snapshot = channel.snapshot()
        assert snapshot["error"] == "boom"
        assert snapshot["complete"] is False
        assert snapshot["result"]["paragraph"] == "p"

    def test_start_resets(self) -> None:
        """A new run discards the previous run's state."""
        channel = ResultChannel()
        channel.start("one")
        channel.publish(ErrorMessage(message="boom"))

        channel.start("two")

        assert channel.last_error is None
        assert channel.pending.paragraph == "two"

    def test_ignores_run_messages(self) -> None:
        """Requests are never published back to listeners."""
        channel = ResultChannel()
        listener = Mock()
        channel.subscribe(listener)

        channel.publish(_request())

        listener.assert_not_called()


class TestHost:
    """Test the host entry points."""

    def _host(self, tmp_path: Path) -> tuple[Host, MagicMock]:
        config = AppConfig(watch_dir=tmp_path, goals_path=tmp_path / "goals.txt")
        config.save_goals("learn rust")
        supervisor = MagicMock()
        supervisor.poll.return_value = []
        return Host(config, supervisor=supervisor), supervisor

    def _event(self, text: str = "Ideas for app X.") -> TriggerEvent:
        return TriggerEvent(text=text, source_path=Path("/notes/a.md"))

    def test_trigger_starts_run_with_goals(self, tmp_path: Path) -> None:
        """A trigger acquires the gate and hands the worker the request."""
        host, supervisor = self._host(tmp_path)

        assert host.on_trigger(self._event())

        request = supervisor.supersede.call_args.args[0]
        assert request.paragraph == "Ideas for app X."
        assert request.user_goals == "learn rust"
        assert host.gate.is_busy
        assert host.channel.pending.paragraph == "Ideas for app X."

    def test_trigger_dropped_while_busy(self, tmp_path: Path) -> None:
        """Only one run is in flight."""
        host, supervisor = self._host(tmp_path)
        host.on_trigger(self._event("first."))

        assert not host.on_trigger(self._event("second."))
        assert supervisor.supersede.call_count == 1
        assert host.last_trigger.text == "first."

    def test_pump_releases_on_result(self, tmp_path: Path) -> None:
        """The gate opens when the worker delivers its result."""
        host, supervisor = self._host(tmp_path)
        host.on_trigger(self._event())
        supervisor.poll.return_value = [ResultMessage(result=PipelineResult(summary="s"))]

        host.pump()

        assert not host.gate.is_busy
        assert host.channel.complete

    def test_pump_releases_on_exit(self, tmp_path: Path) -> None:
        """The gate opens when the worker exits, whatever the reason."""
        host, supervisor = self._host(tmp_path)
        host.on_trigger(self._event())
        supervisor.poll.return_value = [WorkerExit(-9)]

        host.pump()

        assert not host.gate.is_busy

    def test_refresh_reruns_last_paragraph(self, tmp_path: Path) -> None:
        """Refresh clears a stuck gate and supersedes the running worker."""
        host, supervisor = self._host(tmp_path)
        host.on_trigger(self._event())

        assert host.refresh()

        assert supervisor.supersede.call_count == 2
        assert supervisor.supersede.call_args.args[0].paragraph == "Ideas for app X."
        assert host.gate.is_busy

    def test_refresh_without_paragraph(self, tmp_path: Path) -> None:
        """Nothing to refresh before the first trigger."""
        host, supervisor = self._host(tmp_path)

        assert not host.refresh()
        supervisor.supersede.assert_not_called()
        assert not host.gate.is_busy

    def test_spawn_failure_releases_gate(self, tmp_path: Path) -> None:
        """A worker that cannot start leaves the gate open and reports an error."""
        host, supervisor = self._host(tmp_path)
        supervisor.supersede.side_effect = OSError("too many processes")

        assert not host.on_trigger(self._event())
        assert not host.gate.is_busy
        assert "too many processes" in host.channel.last_error

    def test_undecodable_goals_still_runs(self, tmp_path: Path) -> None:
        """A corrupt goals file is treated as empty instead of blocking the run."""
        host, supervisor = self._host(tmp_path)
        (tmp_path / "goals.txt").write_bytes(b"\xff\xfe bad utf8")

        assert host.on_trigger(self._event())

        assert supervisor.supersede.call_args.args[0].user_goals == ""
        assert host.gate.is_busy

    def test_request_build_failure_releases_gate(self, tmp_path: Path) -> None:
        """Any failure before the worker starts leaves the gate open."""
        host, supervisor = self._host(tmp_path)
        host.config = Mock(wraps=host.config)
        host.config.load_goals.side_effect = RuntimeError("goals unavailable")

        assert not host.on_trigger(self._event())
        assert not host.gate.is_busy
        supervisor.supersede.assert_not_called()

        host.config.load_goals.side_effect = None
        host.config.load_goals.return_value = ""
        assert host.refresh()
        assert host.gate.is_busy

    def test_status(self, tmp_path: Path) -> None:
        """Status reports the gate and last paragraph."""
        host, supervisor = self._host(tmp_path)
        supervisor.is_running = False
        supervisor.pid = None
        host.on_trigger(self._event())

        status = host.status()

        assert status["busy"] is True
        assert status["last_paragraph"] == "Ideas for app X."
        assert status["watch_dir"] == str(tmp_path)

    def test_run_forever_detects_and_shuts_down(self, tmp_path: Path) -> None:
        """The loop notices a finished thought and kills the worker on exit."""
        host, supervisor = self._host(tmp_path)
        host.config.poll_interval = 0.01
        host.detector.debounce_seconds = 0.01
        note = tmp_path / "a.txt"

        async def scenario() -> None:
            task = asyncio.get_running_loop().create_task(host.run_forever(tick=0.01))
            await asyncio.sleep(0.05)
            note.write_text("Ideas for app X.")
            await asyncio.sleep(0.2)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        supervisor.supersede.assert_called_once()
        assert supervisor.supersede.call_args.args[0].source_path == str(note)
        supervisor.kill.assert_called()
