"""ProcessLauncher — bounded-concurrency launcher for short-lived workers.

Callers submit launch requests; the launcher queues them and starts them
only while fewer than ``max_concurrency`` are running. Admission is FIFO.
Each request's future (and optional callback) resolves once, when its
process has been started, or fails if it could not be.

All bookkeeping happens on one event loop. submit() and tick() never
await, so every queue/active-set transition is atomic without locks.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections import deque
from pathlib import Path
from typing import Any, Sequence

from procqueue.config import LauncherConfig, ProcqueueSettings, configure_logging
from procqueue.debug import DebugPortRotator
from procqueue.events.bus import EventBus
from procqueue.exceptions import NoRunningLoopError, SpawnError, WorkerRuntimeError
from procqueue.sink import CompletionSink, LaunchCallback
from procqueue.spawner import BaseSpawner, SubprocessSpawner
from procqueue.types import LaunchRequest, RequestId, SpawnOptions, WorkerProcess

_logger = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024
_MAX_OUTPUT_LINES = 200


def _keep_line(target: list[str], line: bytes) -> None:
    target.append(line.decode("utf-8", errors="replace").rstrip())
    # Keep last 200 lines
    if len(target) > _MAX_OUTPUT_LINES:
        del target[: _MAX_OUTPUT_LINES // 2]


class ProcessLauncher:
    """Queue of launch requests drained under a concurrency ceiling."""

    def __init__(
        self,
        config: LauncherConfig | None = None,
        spawner: BaseSpawner | None = None,
        debug: DebugPortRotator | None = None,
        event_bus: EventBus | None = None,
        settings: ProcqueueSettings | None = None,
    ) -> None:
        if settings is None:
            # An explicit config makes the environment ceiling irrelevant
            settings = (
                ProcqueueSettings(max_concurrency=None) if config is not None
                else ProcqueueSettings()
            )
        configure_logging(settings.log_level)

        self._config = config or LauncherConfig.from_settings(settings)
        self._spawner = spawner or SubprocessSpawner()
        if debug is None and settings.debug_port is not None:
            debug = DebugPortRotator(settings.debug_port, host=settings.debug_host)
        self._debug = debug
        self._bus = event_bus

        self._pending: deque[LaunchRequest] = deque()
        self._active: dict[RequestId, WorkerProcess] = {}
        self._tasks: set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()

    # ── Introspection ────────────────────────────────────────────────

    @property
    def config(self) -> LauncherConfig:
        return self._config

    @property
    def max_concurrency(self) -> int:
        return self._config.max_concurrency

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def active_count(self) -> int:
        return len(self._active)

    def list_processes(self) -> list[dict[str, Any]]:
        """Active worker table for display."""
        return [worker.to_dict() for worker in self._active.values()]

    # ── Submission ───────────────────────────────────────────────────

    def submit(
        self,
        target: str | Path,
        args: Sequence[str] | None = None,
        options: SpawnOptions | None = None,
        callback: LaunchCallback | None = None,
    ) -> asyncio.Future[WorkerProcess]:
        """Queue ``target`` for launch.

        Returns a future resolved with the WorkerProcess once it has
        been started, or failed with a LaunchError. ``callback``, when
        given, is called as ``callback(error, worker)`` with the same
        outcome. Admission may or may not have happened on return.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            raise NoRunningLoopError("submit() requires a running event loop") from None
        if isinstance(args, (str, bytes)):
            raise TypeError("args must be a sequence of strings, not a single string")

        request = LaunchRequest(
            target=str(target),
            args=tuple(str(a) for a in (args or ())),
            options=options or SpawnOptions(),
            sink=CompletionSink(loop, callback),
        )
        self._pending.append(request)
        self._idle.clear()
        _logger.debug("Queued %s as request %s", request.target, request.id)

        self.tick()
        return request.sink.future

    async def join(self) -> None:
        """Wait until nothing is queued or running."""
        await self._idle.wait()

    # ── Scheduler ────────────────────────────────────────────────────

    def tick(self) -> None:
        """Admit queued requests while capacity remains.

        Safe to call at any time; with nothing queued it does nothing.
        """
        _logger.debug("Tick with %d queued, %d active", len(self._pending), len(self._active))
        if not self._pending:
            return

        while self._pending and len(self._active) < self._config.max_concurrency:
            request = self._pending.popleft()
            worker = WorkerProcess(
                request_id=request.id,
                target=request.target,
                args=request.args,
            )
            self._active[request.id] = worker
            task = asyncio.get_running_loop().create_task(self._launch(request, worker))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            _logger.debug("Admitted request %s (%d active)", request.id, len(self._active))

        if self._pending:
            _logger.debug(
                "At capacity (%d/%d); %d request(s) waiting",
                len(self._active), self._config.max_concurrency, len(self._pending),
            )

    # ── Process launch ───────────────────────────────────────────────

    def build_command(self, request: LaunchRequest) -> list[str]:
        """Command line for a request, with the debug adjustment applied."""
        options = request.options
        if not options.interpreter:
            return [request.target, *request.args]

        command = [options.executable or sys.executable]
        if self._debug is not None:
            command.extend(self._debug.next_args())
        command.extend(options.exec_args)
        if options.module:
            command.extend(["-m", request.target])
        else:
            command.append(request.target)
        command.extend(request.args)
        return command

    async def _launch(self, request: LaunchRequest, worker: WorkerProcess) -> None:
        worker.command = self.build_command(request)
        try:
            process = await self._spawner.spawn(worker.command, request.options)
        except Exception as e:
            self._on_error(request, worker, SpawnError(request.id, request.target, e))
            self._emit("worker.failed", worker, error=str(e)[:300])
            return

        worker.mark_running(process)
        _logger.debug("Started %s with pid %s", request.target, worker.pid)
        request.sink.succeed(worker)
        self._emit("worker.spawned", worker)

        # Piped output must be drained or a chatty child blocks on a full pipe
        readers = []
        for stream, target in (
            (getattr(process, "stdout", None), worker.stdout_lines),
            (getattr(process, "stderr", None), worker.stderr_lines),
        ):
            if stream is not None:
                readers.append(self._drain(stream, target))

        try:
            if readers:
                await asyncio.gather(*readers)
            exit_code = await process.wait()
        except Exception as e:
            self._on_error(request, worker, WorkerRuntimeError(request.id, request.target, e))
            self._emit("worker.failed", worker, error=str(e)[:300])
            return

        self._on_exit(request, worker, exit_code)
        self._emit("worker.exited", worker)

    async def _drain(self, stream: asyncio.StreamReader, target: list[str]) -> None:
        """Read a piped stream to EOF, keeping the most recent lines."""
        buffered = b""
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                break
            buffered += chunk
            *lines, buffered = buffered.split(b"\n")
            for line in lines:
                _keep_line(target, line)
        if buffered:
            _keep_line(target, buffered)

    # ── Completion ───────────────────────────────────────────────────

    def _on_exit(self, request: LaunchRequest, worker: WorkerProcess, exit_code: int) -> None:
        _logger.debug("pid %s exited with %s", worker.pid, exit_code)
        self._release(request, worker)
        worker.mark_exited(exit_code)
        request.sink.succeed(worker)
        self.tick()
        self._check_idle()

    def _on_error(self, request: LaunchRequest, worker: WorkerProcess, error: Exception) -> None:
        _logger.error("Launch of %s failed: %s", request.target, error.__cause__ or error)
        self._release(request, worker)
        worker.mark_failed()
        if not request.sink.fail(error, worker):
            _logger.warning(
                "Request %s already reported as started; dropping error: %s",
                request.id, error,
            )
        self.tick()
        self._check_idle()

    def _release(self, request: LaunchRequest, worker: WorkerProcess) -> None:
        if self._active.get(request.id) is worker:
            del self._active[request.id]
        _logger.debug("Slot freed; %d active", len(self._active))

    def _check_idle(self) -> None:
        if not self._pending and not self._active:
            self._idle.set()

    def _emit(self, topic: str, worker: WorkerProcess, **extra: Any) -> None:
        """Publish in the background; subscribers never hold up a slot."""
        if self._bus is None:
            return
        data = {**worker.to_dict(), **extra}
        task = asyncio.get_running_loop().create_task(
            self._bus.emit(topic, data, source="launcher")
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
