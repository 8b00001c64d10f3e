"""
In-process transport wired straight into a simulated controller.

Lets the driver run against :class:`APScope` or :class:`PMCScope` without a
serial port or socket.  The scope is advanced by the elapsed ``monotonic``
time before every operation, so a fake clock shared with the driver makes
the simulation fully deterministic.
"""

import logging
import time
from typing import Callable, List, Optional

from ..errors import ReadTimeout, TransportError
from ..transport import Transport

logger = logging.getLogger(__name__)


class SimulatedTransport(Transport):
    """
    Attributes:
        scope: Object exposing ``handle_msg(bytes) -> bytes`` and ``tick(dt)``.
        written (list[str]): Every frame written, in order.
    """

    def __init__(self, scope, monotonic: Optional[Callable[[], float]] = None):
        self.scope = scope
        self.monotonic = monotonic or time.monotonic
        self.written: List[str] = []
        self._buffer = b""
        self._connected = False
        self._last = None

    @property
    def connected(self) -> bool:
        return self._connected

    def _advance(self) -> None:
        now = self.monotonic()
        if self._last is not None:
            self.scope.tick(now - self._last)
        self._last = now

    def _require_open(self) -> None:
        if not self._connected:
            raise TransportError("Simulated port is not open")

    async def open(self) -> None:
        self._connected = True
        self._last = self.monotonic()

    async def close(self) -> None:
        self._connected = False
        self._buffer = b""

    async def write(self, data: bytes) -> None:
        self._require_open()
        self._advance()
        self.written.append(data.decode("ascii", errors="replace"))
        self._buffer += self.scope.handle_msg(data)

    async def read_until(self, terminator: bytes, timeout: Optional[float] = None) -> bytes:
        self._require_open()
        self._advance()
        head, sep, tail = self._buffer.partition(terminator)
        if not sep:
            raise ReadTimeout(f"Timeout waiting for {terminator!r} on simulator")
        self._buffer = tail
        return head

    async def read_exact(self, n: int, timeout: Optional[float] = None) -> bytes:
        self._require_open()
        self._advance()
        if len(self._buffer) < n:
            raise ReadTimeout(f"Timeout reading {n} bytes on simulator")
        data, self._buffer = self._buffer[:n], self._buffer[n:]
        return data

    async def flush_input(self) -> None:
        self._require_open()
        if self._buffer:
            logger.debug("Discarded stale input %r", self._buffer)
        self._buffer = b""
