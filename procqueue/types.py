"""Core types shared across procqueue: spawn options, requests, handles."""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal, Protocol, TypeAlias

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from procqueue.sink import CompletionSink

RequestId: TypeAlias = str
StreamMode = Literal["inherit", "devnull", "pipe"]


def new_id() -> str:
    return uuid.uuid4().hex[:12]


class WorkerState(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"
    FAILED = "failed"


class SpawnOptions(BaseModel):
    """How a target is turned into a process.

    By default the target is a Python script run under the current
    interpreter, the way a fork of the host would run it.
    """

    model_config = ConfigDict(frozen=True)

    interpreter: bool = True  # False: the target is an executable program
    module: bool = False  # Run the target with ``-m``
    executable: str | None = None  # Interpreter override; defaults to sys.executable
    exec_args: tuple[str, ...] = ()  # Interpreter flags, before the target
    cwd: Path | None = None
    env: dict[str, str] = Field(default_factory=dict)
    inherit_env: bool = True
    stdout: StreamMode = "inherit"
    stderr: StreamMode = "inherit"


class ProcessLike(Protocol):
    """What the launcher needs from whatever the spawn primitive returns."""

    pid: int
    returncode: int | None

    async def wait(self) -> int: ...


@dataclass(frozen=True, eq=False)
class LaunchRequest:
    """One call to submit(). Never mutated after creation."""

    target: str
    args: tuple[str, ...]
    options: SpawnOptions
    sink: CompletionSink
    id: RequestId = field(default_factory=new_id)
    submitted_at: float = field(default_factory=time.time)


@dataclass(eq=False)
class WorkerProcess:
    """Handle for an admitted request.

    Created the moment a request is admitted, before the OS process
    exists; ``pid`` is filled once the spawn primitive returns.
    """

    request_id: RequestId
    target: str
    args: tuple[str, ...]
    state: WorkerState = WorkerState.STARTING
    command: list[str] = field(default_factory=list)
    process: ProcessLike | None = None
    started_at: float | None = None
    stopped_at: float | None = None
    exit_code: int | None = None
    stdout_lines: list[str] = field(default_factory=list)  # Only filled for "pipe"
    stderr_lines: list[str] = field(default_factory=list)
    _exited: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process is not None else None

    @property
    def returncode(self) -> int | None:
        return self.exit_code

    @property
    def done(self) -> bool:
        return self.state in (WorkerState.EXITED, WorkerState.FAILED)

    def mark_running(self, process: ProcessLike) -> None:
        self.process = process
        self.state = WorkerState.RUNNING
        self.started_at = time.time()

    def mark_exited(self, exit_code: int) -> None:
        self.exit_code = exit_code
        self.state = WorkerState.EXITED
        self.stopped_at = time.time()
        self._exited.set()

    def mark_failed(self) -> None:
        self.state = WorkerState.FAILED
        self.stopped_at = time.time()
        self._exited.set()

    async def wait(self) -> int | None:
        """Wait for the process to finish. Returns the exit code, or None if it failed."""
        await self._exited.wait()
        return self.exit_code

    def to_dict(self) -> dict[str, Any]:
        uptime = 0
        if self.started_at:
            end = self.stopped_at or time.time()
            uptime = int(end - self.started_at)
        return {
            "request_id": self.request_id,
            "target": self.target,
            "state": self.state.value,
            "pid": self.pid,
            "exit_code": self.exit_code,
            "uptime_s": uptime,
            "command": " ".join(self.command),
        }
