"""Single-resolution completion sink feeding a future and an optional callback."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from procqueue.types import WorkerProcess

_logger = logging.getLogger(__name__)

LaunchCallback = Callable[[Optional[BaseException], Optional["WorkerProcess"]], None]


class CompletionSink:
    """Delivers exactly one outcome, once, to a future and an optional callback.

    Both observers always see the same outcome. Later deliveries are
    ignored and reported as False.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        callback: LaunchCallback | None = None,
    ) -> None:
        self.future: asyncio.Future[WorkerProcess] = loop.create_future()
        self._callback = callback
        self._delivered = False

    @property
    def delivered(self) -> bool:
        return self._delivered

    def succeed(self, worker: WorkerProcess) -> bool:
        if self._delivered:
            return False
        self._delivered = True
        if not self.future.done():
            self.future.set_result(worker)
        self._notify(None, worker)
        return True

    def fail(self, error: BaseException, worker: WorkerProcess | None = None) -> bool:
        if self._delivered:
            return False
        self._delivered = True
        if not self.future.done():
            self.future.set_exception(error)
            if self._callback is not None:
                # Reported through the callback; keeps asyncio from warning
                self.future.exception()
        self._notify(error, worker)
        return True

    def _notify(self, error: BaseException | None, worker: WorkerProcess | None) -> None:
        if self._callback is None:
            return
        try:
            self._callback(error, worker)
        except Exception:
            _logger.exception("Launch callback raised; ignoring")
