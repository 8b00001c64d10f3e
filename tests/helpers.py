import unittest
from datetime import datetime, timedelta, timezone

from gem_mount.driver import MountDriver
from gem_mount.errors import ReadTimeout, TransportError
from gem_mount.model import Family, Site
from gem_mount.simulator import APScope, PMCScope, SimulatedTransport
from gem_mount.transport import Transport

LATITUDE = 50.1822
LONGITUDE = 19.7925
ELEVATION = 400.0


class FakeClock:
    """
    Shared time source for the driver and the simulators.

    ``now()`` is the wall clock handed to the driver, ``monotonic()`` drives
    the simulator physics.  Nothing moves until :meth:`advance` is called.
    """

    def __init__(self, start=datetime(2024, 3, 20, 22, 0, 0, tzinfo=timezone.utc)):
        self.start = start
        self.elapsed = 0.0

    def now(self):
        return self.start + timedelta(seconds=self.elapsed)

    def monotonic(self):
        return self.elapsed

    def advance(self, seconds):
        self.elapsed += seconds


class ScriptedTransport(Transport):
    """
    Records every frame written and replays canned responses.

    ``responses`` maps a frame to the bytes the mount answers with.  A list
    value is consumed one entry per send; an empty entry models silence.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.written = []
        self.buffer = b""
        self._connected = True

    @property
    def connected(self):
        return self._connected

    async def open(self):
        self._connected = True

    async def close(self):
        self._connected = False

    async def write(self, data):
        if not self._connected:
            raise TransportError("closed")
        frame = data.decode("ascii")
        self.written.append(frame)
        reply = self.responses.get(frame, b"")
        if isinstance(reply, list):
            reply = reply.pop(0) if reply else b""
        self.buffer += reply

    async def read_until(self, terminator, timeout=None):
        head, sep, tail = self.buffer.partition(terminator)
        if not sep:
            raise ReadTimeout(f"no {terminator!r}")
        self.buffer = tail
        return head

    async def read_exact(self, n, timeout=None):
        if len(self.buffer) < n:
            raise ReadTimeout(f"wanted {n} bytes")
        data, self.buffer = self.buffer[:n], self.buffer[n:]
        return data

    async def flush_input(self):
        self.buffer = b""


class SimulatedMountTest(unittest.IsolatedAsyncioTestCase):
    """
    Base class running a :class:`MountDriver` against an in-process simulator.

    Subclasses set ``family`` and may override :meth:`make_scope`.
    """

    family = Family.AP

    def make_scope(self):
        site = Site(LATITUDE, LONGITUDE, ELEVATION)
        if self.family == Family.PMC:
            return PMCScope(slew_speed=4.0)
        return APScope(site=site, clock=self.clock.now)

    async def asyncSetUp(self):
        self.clock = FakeClock()
        self.scope = self.make_scope()
        self.transport = SimulatedTransport(self.scope, self.clock.monotonic)
        self.driver = MountDriver(self.transport, family=self.family, clock=self.clock.now)

    async def asyncTearDown(self):
        await self.driver.disconnect()

    async def ready(self):
        """Connects and programs site and time, leaving the mount tracking."""
        await self.driver.connect()
        await self.driver.update_location(LATITUDE, LONGITUDE, ELEVATION)
        await self.driver.update_time(self.clock.now(), 0.0)

    async def settle(self, slew_seconds=120.0, polls=3):
        """Lets a slew finish, then polls once a second."""
        self.clock.advance(slew_seconds)
        status = None
        for _ in range(polls):
            status = await self.driver.read_status()
            self.clock.advance(1.0)
        return status

    def frames_after(self, mark):
        return self.transport.written[mark:]
