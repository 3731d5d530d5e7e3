"""Shared test fixtures — FakeSpawner for scheduling tests without real processes."""

from __future__ import annotations

import asyncio
import itertools

import pytest

from procqueue.config import LauncherConfig, ProcqueueSettings
from procqueue.launcher import ProcessLauncher
from procqueue.spawner import BaseSpawner

_pids = itertools.count(1000)


class FakeProcess:
    """Process stand-in whose exit is driven by the test."""

    def __init__(self, command):
        self.command = list(command)
        self.pid = next(_pids)
        self.returncode = None
        self._exit = asyncio.Event()
        self._error = None

    @property
    def target(self) -> str:
        return self.command[-1]

    def finish(self, code: int = 0) -> None:
        self.returncode = code
        self._exit.set()

    def crash(self, error: Exception) -> None:
        self._error = error
        self._exit.set()

    async def wait(self) -> int:
        await self._exit.wait()
        if self._error is not None:
            raise self._error
        return self.returncode


class FakeSpawner(BaseSpawner):
    """Records every spawn and the peak number of unfinished processes."""

    def __init__(self, auto_exit: bool = False, missing: tuple[str, ...] = ()):
        self.auto_exit = auto_exit
        self.missing = set(missing)
        self.spawned: list[FakeProcess] = []
        self.commands: list[list[str]] = []
        self.peak = 0

    @property
    def running(self) -> list[FakeProcess]:
        return [p for p in self.spawned if not p._exit.is_set()]

    async def spawn(self, command, options):
        self.commands.append(list(command))
        if self.missing.intersection(command):
            raise FileNotFoundError(2, "No such file or directory", command[-1])
        proc = FakeProcess(command)
        self.spawned.append(proc)
        self.peak = max(self.peak, len(self.running))
        if self.auto_exit:
            proc.finish(0)
        return proc


async def _settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settle():
    return _settle


@pytest.fixture
def settings():
    return ProcqueueSettings(log_level="debug")


@pytest.fixture
def spawner():
    return FakeSpawner()


@pytest.fixture
def make_launcher(settings):
    def _factory(max_concurrency: int = 2, spawner: BaseSpawner | None = None, **kwargs):
        return ProcessLauncher(
            config=LauncherConfig(max_concurrency=max_concurrency),
            spawner=spawner or FakeSpawner(),
            settings=settings,
            **kwargs,
        )
    return _factory
