"""Custom exception hierarchy for procqueue."""

from __future__ import annotations


class ProcqueueError(Exception):
    """Base for all procqueue errors."""


class NoRunningLoopError(ProcqueueError):
    """submit() was called without a running event loop."""


class LaunchError(ProcqueueError):
    """A single launch request failed. Other requests are unaffected."""

    def __init__(self, request_id: str, target: str, cause: BaseException) -> None:
        super().__init__(f"{target} (request {request_id}): {cause}")
        self.request_id = request_id
        self.target = target
        self.cause = cause
        self.__cause__ = cause


class SpawnError(LaunchError):
    """The spawn primitive could not start the process."""


class WorkerRuntimeError(LaunchError):
    """Waiting on a started process failed."""
