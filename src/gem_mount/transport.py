"""
Line-oriented duplex channel to the mount.

Supports serial ports via pyserial-asyncio and TCP endpoints given as
``socket://host:port`` (used by the bundled simulator).  Every failure is
raised as :class:`~gem_mount.errors.TransportError`; nothing retries here.
"""

import abc
import asyncio
import logging
from typing import Optional

import serial
import serial_asyncio

from .errors import ReadTimeout, TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
FLUSH_WAIT = 0.01


class Transport(abc.ABC):
    """Interface the command layers talk to."""

    timeout: float = DEFAULT_TIMEOUT

    @property
    @abc.abstractmethod
    def connected(self) -> bool: ...

    @abc.abstractmethod
    async def open(self) -> None: ...

    @abc.abstractmethod
    async def close(self) -> None: ...

    @abc.abstractmethod
    async def write(self, data: bytes) -> None: ...

    @abc.abstractmethod
    async def read_until(self, terminator: bytes, timeout: Optional[float] = None) -> bytes:
        """Returns everything before ``terminator``; the terminator is consumed."""

    @abc.abstractmethod
    async def read_exact(self, n: int, timeout: Optional[float] = None) -> bytes: ...

    @abc.abstractmethod
    async def flush_input(self) -> None:
        """Discards every byte received before the call."""


class SerialTransport(Transport):
    """
    Serial or TCP stream transport.

    Attributes:
        port (str): Device path (e.g. /dev/ttyUSB0) or URL (socket://host:port).
        baudrate (int): Line speed, 9600 for both controller families.
        timeout (float): Default read timeout in seconds.
    """

    def __init__(self, port: str, baudrate: int = 9600, timeout: float = DEFAULT_TIMEOUT):
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def open(self) -> None:
        try:
            if self.port.startswith("socket://"):
                host, port = self.port[9:].rsplit(":", 1)
                self.reader, self.writer = await asyncio.open_connection(host, int(port))
            else:
                self.reader, self.writer = await serial_asyncio.open_serial_connection(
                    url=self.port, baudrate=self.baudrate
                )
        except (OSError, ValueError, serial.SerialException) as e:
            raise TransportError(f"Cannot open {self.port}: {e}") from e
        self._connected = True
        logger.info("Connected to %s at %d baud", self.port, self.baudrate)

    async def close(self) -> None:
        if self.writer and self._connected:
            self._connected = False
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except (OSError, serial.SerialException) as e:
                logger.warning("Error closing %s: %s", self.port, e)
            logger.info("Disconnected from %s", self.port)
        self.reader = self.writer = None

    def _require_open(self):
        if not self._connected or self.reader is None or self.writer is None:
            raise TransportError(f"Port {self.port} is not open")

    async def write(self, data: bytes) -> None:
        self._require_open()
        try:
            self.writer.write(data)
            await self.writer.drain()
        except (OSError, serial.SerialException) as e:
            raise TransportError(f"Write to {self.port} failed: {e}") from e

    async def read_until(self, terminator: bytes, timeout: Optional[float] = None) -> bytes:
        self._require_open()
        try:
            data = await asyncio.wait_for(
                self.reader.readuntil(terminator), timeout=timeout or self.timeout
            )
        except asyncio.TimeoutError as e:
            raise ReadTimeout(f"Timeout waiting for {terminator!r} on {self.port}") from e
        except asyncio.IncompleteReadError as e:
            raise TransportError(f"Connection closed on {self.port}") from e
        except (asyncio.LimitOverrunError, OSError, serial.SerialException) as e:
            raise TransportError(f"Read from {self.port} failed: {e}") from e
        return data[: -len(terminator)]

    async def read_exact(self, n: int, timeout: Optional[float] = None) -> bytes:
        self._require_open()
        try:
            return await asyncio.wait_for(
                self.reader.readexactly(n), timeout=timeout or self.timeout
            )
        except asyncio.TimeoutError as e:
            raise ReadTimeout(f"Timeout reading {n} bytes on {self.port}") from e
        except asyncio.IncompleteReadError as e:
            raise TransportError(f"Connection closed on {self.port}") from e
        except (OSError, serial.SerialException) as e:
            raise TransportError(f"Read from {self.port} failed: {e}") from e

    async def flush_input(self) -> None:
        self._require_open()
        while True:
            try:
                data = await asyncio.wait_for(self.reader.read(1024), timeout=FLUSH_WAIT)
            except asyncio.TimeoutError:
                return
            except (OSError, serial.SerialException) as e:
                raise TransportError(f"Flush on {self.port} failed: {e}") from e
            if not data:
                return
            logger.debug("Discarded stale input %r", data)
