"""Debugger port rotation for spawned children.

When the host runs under a debugger, every child that also starts a
debug server needs its own port. The rotator hands out base+1, base+2, ...
and is only wired in when a debug profile is explicitly enabled.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

_logger = logging.getLogger(__name__)


@dataclass
class DebugPortRotator:
    base_port: int
    host: str = "127.0.0.1"
    wait_for_client: bool = False
    _last_port: int = field(default=0, init=False, repr=False)

    def __post_init__(self) -> None:
        if not 0 < self.base_port < 65535:
            raise ValueError(f"debug base port out of range: {self.base_port}")
        self._last_port = self.base_port

    @property
    def last_port(self) -> int:
        return self._last_port

    def next_port(self) -> int:
        port = self._last_port + 1
        if port > 65535:
            port = self.base_port + 1
        self._last_port = port
        return port

    def next_args(self) -> list[str]:
        """Interpreter flags that start a debugpy server on the next port."""
        port = self.next_port()
        _logger.debug("Assigning debug port %d to next child", port)
        args = ["-m", "debugpy", "--listen", f"{self.host}:{port}"]
        if self.wait_for_client:
            args.append("--wait-for-client")
        return args
