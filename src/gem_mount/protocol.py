"""
Common command-layer contract for both controller families.

The driver facade holds exactly one :class:`MountProtocol` implementation,
chosen at handshake time.  Implementations are stateless apart from the
capabilities learned during the handshake and a few flags the controller
itself does not report (e.g. whether tracking was switched on).
"""

import abc
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from .errors import NotSupported, ProtocolMismatch
from .model import (
    Capabilities,
    Direction,
    EquatorialCoord,
    Family,
    HorizontalCoord,
    MotorCounts,
    ParkStatus,
    PierSide,
    Site,
    SlewConfig,
    SyncMode,
    TrackMode,
)
from .transport import Transport

logger = logging.getLogger(__name__)


@dataclass
class PositionReading:
    """
    One position sample.

    ``sample`` is the pair the state machine compares between polls for
    stasis, in the units of ``MountProtocol.stasis_epsilon``.
    """

    coord: EquatorialCoord
    pier_side: PierSide = PierSide.UNKNOWN
    counts: Optional[MotorCounts] = None
    sample: Tuple[float, float] = (0.0, 0.0)


class MountProtocol(abc.ABC):
    """Wire vocabulary of one controller family."""

    family: Family
    terminator: bytes = b"#"

    def __init__(self, transport: Transport):
        self.transport = transport
        self.capabilities: Optional[Capabilities] = None
        self.stasis_epsilon: Tuple[float, float] = (0.0, 0.0)

    # --- framing helpers ---

    async def send(self, frame: str) -> None:
        """Writes one frame after discarding stale input."""
        logger.debug("CMD <%s>", frame)
        await self.transport.flush_input()
        await self.transport.write(frame.encode("ascii"))

    async def query(self, frame: str) -> str:
        """Sends ``frame`` and returns the terminated reply without terminator."""
        await self.send(frame)
        raw = await self.transport.read_until(self.terminator)
        response = raw.decode("ascii", errors="replace")
        logger.debug("RES <%s>", response)
        return response

    async def query_exact(self, frame: str, length: int) -> str:
        await self.send(frame)
        raw = await self.transport.read_exact(length)
        response = raw.decode("ascii", errors="replace")
        logger.debug("RES <%s>", response)
        return response

    @staticmethod
    def mismatch(frame: str, response: str, expected: str) -> ProtocolMismatch:
        message = f"Unexpected reply {response!r} to {frame!r}, expected {expected}"
        logger.error(message)
        return ProtocolMismatch(message, frame=frame, response=response)

    # --- capability set ---

    @abc.abstractmethod
    async def handshake(self) -> Capabilities:
        """Identifies the controller and performs its session setup."""

    @abc.abstractmethod
    async def goto(self, target: EquatorialCoord, lst: float) -> None: ...

    @abc.abstractmethod
    async def sync(self, target: EquatorialCoord, lst: float, mode: SyncMode) -> str: ...

    @abc.abstractmethod
    async def abort(self) -> None: ...

    @abc.abstractmethod
    async def set_track_mode(self, mode: TrackMode) -> None: ...

    @abc.abstractmethod
    async def set_track_rate(self, ra_rate: float, dec_rate: float) -> None: ...

    def check_track_rate(self, ra_rate: float, dec_rate: float) -> None:
        """Raises NotSupported for custom rates the controller cannot follow."""

    @abc.abstractmethod
    async def read_position(self, lst: float) -> PositionReading: ...

    @abc.abstractmethod
    async def begin_park(
        self, horizontal: HorizontalCoord, equatorial: EquatorialCoord, lst: float
    ) -> Optional[Tuple[float, float]]:
        """Starts the slew to the park position; returns a seed stasis sample."""

    @abc.abstractmethod
    async def read_park_sample(self, lst: float) -> Tuple[float, float]: ...

    @abc.abstractmethod
    async def finish_park(self) -> None:
        """Family specific park once the park slew has settled."""

    @abc.abstractmethod
    async def jog(self, direction: Direction, rate_index: int) -> None: ...

    @abc.abstractmethod
    async def stop_jog(self, direction: Direction) -> None: ...

    @abc.abstractmethod
    async def pulse_guide(
        self, direction: Direction, duration_ms: int, guide_index: int
    ) -> None: ...

    async def set_guide_rate(self, index: int) -> None:
        raise NotSupported(f"{self.family.name} has no guide rate selection")

    async def set_slew_rate(self, index: int) -> None:
        raise NotSupported(f"{self.family.name} has no slew rate selection")

    # --- optional session setup, AP only by default ---

    async def unpark(self) -> None:
        """Neither family has a wire unpark; UnPark only resumes tracking."""

    def seed_sample(self, target: EquatorialCoord) -> Optional[Tuple[float, float]]:
        """Stasis sample assumed right after a Goto, or None to wait for a poll."""
        return None

    async def is_initialized(self) -> bool:
        return True

    async def initialize(self) -> None:
        """One-shot power-up initialisation."""

    async def park_status(self) -> ParkStatus:
        return ParkStatus.UNKNOWN

    async def set_time(self, utc: datetime, offset_hours: float) -> None:
        """Programs the controller clock; no-op where the controller has none."""

    async def set_location(self, site: Site) -> None:
        """Programs the controller site; no-op where the controller has none."""

    async def configure_rates(self, slew: SlewConfig) -> None:
        """Programs the rate selections that persist on the controller."""

    async def resume_tracking(self) -> None:
        """Called when a slew settles with tracking enabled."""

    async def get_utc_offset(self) -> float:
        raise NotSupported(f"{self.family.name} has no clock")

    async def swap_buttons(self, axis: str) -> None:
        raise NotSupported(f"{self.family.name} has no button swap")

    async def set_pec(self, enabled: bool) -> None:
        raise NotSupported(f"{self.family.name} has no PEC control")
