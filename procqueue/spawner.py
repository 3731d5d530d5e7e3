"""Spawn primitive — turns a command line into a running OS process."""

from __future__ import annotations

import asyncio
import os
from abc import ABC, abstractmethod
from typing import Sequence

from procqueue.types import ProcessLike, SpawnOptions, StreamMode

_STREAMS: dict[StreamMode, int | None] = {
    "inherit": None,
    "devnull": asyncio.subprocess.DEVNULL,
    "pipe": asyncio.subprocess.PIPE,
}


class BaseSpawner(ABC):
    @abstractmethod
    async def spawn(self, command: Sequence[str], options: SpawnOptions) -> ProcessLike:
        """Start ``command``. Raises if the process cannot be started."""


class SubprocessSpawner(BaseSpawner):
    """Spawns real subprocesses with asyncio.create_subprocess_exec."""

    async def spawn(
        self, command: Sequence[str], options: SpawnOptions
    ) -> asyncio.subprocess.Process:
        if options.inherit_env:
            env = {**os.environ, **options.env}
        else:
            env = dict(options.env)

        return await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=_STREAMS[options.stdout],
            stderr=_STREAMS[options.stderr],
            cwd=str(options.cwd) if options.cwd is not None else None,
            env=env,
        )
