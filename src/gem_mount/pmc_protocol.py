"""
Explore Scientific PMC-Eight command layer.

Frames are ``ES`` prefixed ASCII terminated by ``!``.  Every command is
answered by a fixed-length frame, usually an echo of the command, and
positions travel as 24-bit two's complement motor counts.
"""

import asyncio
import logging
from typing import Optional, Tuple

from .coordinates import (
    AXIS_SCALE,
    decode_counts,
    destination_pier_side,
    encode_counts,
    motor_to_radec,
    pier_side_from_counts,
    radec_to_motor,
)
from .errors import InvalidState, NotSupported
from .model import (
    SIDEREAL_RATE,
    TRACK_MODE_RATES,
    Capabilities,
    Direction,
    EquatorialCoord,
    Family,
    HorizontalCoord,
    MotorCounts,
    SyncMode,
    TrackMode,
)
from .protocol import MountProtocol, PositionReading
from .rates import (
    GUIDE_RATES,
    PMC_JOG_RATES,
    PMC_MIN_SLEW_RATE,
    check_index,
    pmc_jog_rate,
    pmc_move_rate,
    pmc_precise_rate,
)
from .transport import Transport

logger = logging.getLogger(__name__)

RA_AXIS = 0
DEC_AXIS = 1

IDENTIFY_PREFIX = "ESGvES"
IDENTIFY_LENGTH = 13
POSITION_LENGTH = 12
PRECISE_RATE_LENGTH = 9
MOVE_RATE_LENGTH = 10
DIRECTION_LENGTH = 7
RATE_LENGTH = 10

# (axis, sign) of the move for each manual direction
JOG_AXES = {
    Direction.NORTH: (DEC_AXIS, 1),
    Direction.SOUTH: (DEC_AXIS, -1),
    Direction.WEST: (RA_AXIS, 1),
    Direction.EAST: (RA_AXIS, -1),
}


class PMCProtocol(MountProtocol):
    """
    Command layer for PMC-Eight controllers.

    Attributes:
        track_rate (float): RA rate last programmed with ``ESTr``, arcsec/s.
            The controller cannot report it, so stasis sampling relies on it.
    """

    family = Family.PMC
    terminator = b"!"

    def __init__(self, transport: Transport, epsilon_counts: float = 1.0):
        super().__init__(transport)
        self.track_rate = 0.0
        self.stasis_epsilon = (
            epsilon_counts * 24.0 / AXIS_SCALE,
            epsilon_counts * 360.0 / AXIS_SCALE,
        )

    async def exchange(self, frame: str, length: int, expected: Optional[str] = None) -> str:
        """Sends ``frame`` and validates the length (and optionally content) of the reply."""
        reply = await self.query(frame) + "!"
        if len(reply) != length:
            raise self.mismatch(frame, reply, f"{length} bytes")
        if expected is not None and reply != expected:
            raise self.mismatch(frame, reply, repr(expected))
        return reply

    # --- handshake ---

    async def handshake(self) -> Capabilities:
        reply = await self.exchange("ESGv!", IDENTIFY_LENGTH)
        if not reply.startswith(IDENTIFY_PREFIX):
            raise self.mismatch("ESGv!", reply, IDENTIFY_PREFIX)
        board = reply[len(IDENTIFY_PREFIX) : -1]
        self.capabilities = Capabilities(
            family=Family.PMC,
            version=reply[:-1],
            firmware=board,
            board=board,
            supports_pier_side=False,
            supports_park_status=False,
            supports_pec=False,
        )
        logger.info("PMC-Eight board %s", board)
        return self.capabilities

    # --- axis primitives ---

    async def get_position_axis(self, axis: int) -> int:
        reply = await self.exchange(f"ESGp{axis}!", POSITION_LENGTH)
        if not reply.startswith(f"ESGp{axis}"):
            raise self.mismatch(f"ESGp{axis}!", reply, f"ESGp{axis}<counts>!")
        return decode_counts(reply[5:11])

    async def get_position(self) -> MotorCounts:
        return MotorCounts(
            await self.get_position_axis(RA_AXIS), await self.get_position_axis(DEC_AXIS)
        )

    async def set_position_axis(self, axis: int, counts: int) -> None:
        field = encode_counts(counts)
        await self.exchange(f"ESSp{axis}{field}!", POSITION_LENGTH, f"ESGp{axis}{field}!")

    async def set_target_axis(self, axis: int, counts: int) -> None:
        field = encode_counts(counts)
        await self.exchange(f"ESPt{axis}{field}!", POSITION_LENGTH, f"ESGt{axis}{field}!")

    async def set_direction(self, axis: int, forward: bool) -> None:
        frame = f"ESSd{axis}{1 if forward else 0}!"
        await self.exchange(frame, DIRECTION_LENGTH)

    async def get_direction(self, axis: int) -> int:
        reply = await self.exchange(f"ESGd{axis}!", DIRECTION_LENGTH)
        return int(reply[5])

    async def get_rate(self, axis: int) -> int:
        reply = await self.exchange(f"ESGr{axis}!", RATE_LENGTH)
        return int(reply[5:-1], 16)

    async def is_slewing(self) -> bool:
        ra_rate = await self.get_rate(RA_AXIS)
        dec_rate = await self.get_rate(DEC_AXIS)
        return ra_rate > PMC_MIN_SLEW_RATE or dec_rate > PMC_MIN_SLEW_RATE

    async def set_move_rate(self, axis: int, rate: float) -> None:
        """Signed move rate in arcsec/s; the sign selects the axis direction."""
        mrate = pmc_move_rate(rate)
        await self.set_direction(axis, mrate >= 0)
        await self.exchange(f"ESSr{axis}{abs(mrate):04X}!", MOVE_RATE_LENGTH)

    async def set_precise_rate(self, rate: float) -> None:
        mrate = pmc_precise_rate(rate)
        await self.exchange(f"ESTr{abs(mrate):04X}!", PRECISE_RATE_LENGTH)
        await self.set_direction(RA_AXIS, mrate >= 0)
        self.track_rate = rate

    # --- capability set ---

    async def goto(self, target: EquatorialCoord, lst: float) -> None:
        pier = destination_pier_side(target.ra, lst)
        counts = radec_to_motor(target.ra, target.dec, pier, lst)
        logger.debug("Goto %s on %s pier -> %s", target, pier.name, counts)
        await self.set_target_axis(RA_AXIS, counts.ra_counts)
        await self.set_target_axis(DEC_AXIS, counts.dec_counts)

    async def sync(self, target: EquatorialCoord, lst: float, mode: SyncMode) -> str:
        if mode != SyncMode.REGULAR:
            raise NotSupported("PMC-Eight only supports regular sync")
        pier = destination_pier_side(target.ra, lst)
        counts = radec_to_motor(target.ra, target.dec, pier, lst)
        await self.set_position_axis(RA_AXIS, counts.ra_counts)
        await self.set_position_axis(DEC_AXIS, counts.dec_counts)
        return ""

    async def abort(self) -> None:
        await self.set_move_rate(RA_AXIS, 0)
        await self.set_move_rate(DEC_AXIS, 0)

    async def set_track_mode(self, mode: TrackMode) -> None:
        if mode == TrackMode.CUSTOM:
            mode = TrackMode.SIDEREAL
        await self.set_precise_rate(TRACK_MODE_RATES[mode])

    def check_track_rate(self, ra_rate: float, dec_rate: float) -> None:
        if dec_rate != 0:
            raise NotSupported("PMC-Eight cannot track in declination")

    async def set_track_rate(self, ra_rate: float, dec_rate: float) -> None:
        self.check_track_rate(ra_rate, dec_rate)
        await self.set_precise_rate(ra_rate)

    def _sample(self, counts: MotorCounts, coord: EquatorialCoord) -> Tuple[float, float]:
        # a tracking mount holds RA/Dec still, a stopped one holds its counts
        if self.track_rate:
            return coord.ra, coord.dec
        return 24.0 * counts.ra_counts / AXIS_SCALE, 360.0 * counts.dec_counts / AXIS_SCALE

    async def read_position(self, lst: float) -> PositionReading:
        counts = await self.get_position()
        coord = motor_to_radec(counts, lst)
        return PositionReading(
            coord, pier_side_from_counts(counts), counts, self._sample(counts, coord)
        )

    async def begin_park(
        self, horizontal: HorizontalCoord, equatorial: EquatorialCoord, lst: float
    ) -> Optional[Tuple[float, float]]:
        await self.goto(equatorial, lst)
        return None

    async def read_park_sample(self, lst: float) -> Tuple[float, float]:
        return (await self.read_position(lst)).sample

    async def finish_park(self) -> None:
        logger.debug("PMC-Eight has no park command, holding position")

    async def resume_tracking(self) -> None:
        if self.track_rate:
            await self.set_precise_rate(self.track_rate)

    async def set_slew_rate(self, index: int) -> None:
        logger.debug("PMC-Eight GOTO speed is fixed, ignoring rate %d", index)

    async def set_guide_rate(self, index: int) -> None:
        # applied per pulse, nothing to program
        check_index(index, GUIDE_RATES)

    async def jog(self, direction: Direction, rate_index: int) -> None:
        check_index(rate_index, PMC_JOG_RATES)
        if await self.is_slewing():
            raise InvalidState("Cannot start motion while the mount is slewing")
        axis, sign = JOG_AXES[direction]
        await self.set_move_rate(axis, sign * pmc_jog_rate(rate_index))

    async def stop_jog(self, direction: Direction) -> None:
        axis, _ = JOG_AXES[direction]
        await self.set_move_rate(axis, 0)

    async def pulse_guide(self, direction: Direction, duration_ms: int, guide_index: int) -> None:
        check_index(guide_index, GUIDE_RATES)
        axis, sign = JOG_AXES[direction]
        await self.set_move_rate(axis, sign * GUIDE_RATES[guide_index] * SIDEREAL_RATE)
        await asyncio.sleep(max(0, duration_ms) / 1000.0)
        await self.set_move_rate(axis, 0)
