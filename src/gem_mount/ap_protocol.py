"""
Astro-Physics GTO command layer.

ASCII commands terminated by ``#`` with sexagesimal fields.  Set-type
commands are acknowledged by a single ``1``; position queries answer with a
``#``-terminated string; motion and rate selection commands are silent.

References:
    - Astro-Physics GTO command set (GTOCP2/GTOCP3/GTOCP4)
"""

import logging
from datetime import datetime
from typing import Optional, Tuple

from . import astro
from .coordinates import is_uninitialized
from .errors import NotSupported, ProtocolMismatch, ReadTimeout
from .model import (
    Capabilities,
    Direction,
    EquatorialCoord,
    Family,
    HorizontalCoord,
    ParkStatus,
    PierSide,
    ServoClass,
    Site,
    SlewConfig,
    SyncMode,
    TrackMode,
)
from .protocol import MountProtocol, PositionReading
from .rates import (
    AP_GOTO_RATES,
    AP_JOG_RATES,
    GUIDE_RATES,
    ap_dec_multiplier,
    ap_ra_multiplier,
    check_index,
    format_ap_multiplier,
)
from .sexagesimal import (
    format_clock,
    format_date,
    format_degrees,
    format_longitude,
    format_ra,
    format_signed_degrees,
    format_utc_offset,
    is_short_format,
    parse_sexagesimal,
)
from .transport import Transport

logger = logging.getLogger(__name__)

TRACK_MODE_FRAMES = {
    TrackMode.SIDEREAL: ":RT0#",
    TrackMode.LUNAR: ":RT1#",
    TrackMode.SOLAR: ":RT2#",
    # custom rates are layered on top of sidereal with :RR/:RD
    TrackMode.CUSTOM: ":RT0#",
    TrackMode.OFF: ":RT9#",
}

SLEW_ERRORS = {
    "1": "object below horizon",
    "2": "object below the higher limit",
}

BACKLASH_FRAME = ":Br 00:00:00#"
MAX_PULSE_MS = 999


def parse_version(version: str) -> Tuple[str, ServoClass]:
    """
    Maps a ``:V#`` reply to (firmware letter, servo class).

    ``VCP4-P01-01`` style replies come from GTOCP4 boxes; older controllers
    answer with one or two characters whose first letter counts up from
    ``E``.
    """
    version = version.strip()
    if "VCP4" in version:
        return "V", ServoClass.GTOCP4
    if len(version) in (1, 2) and "E" <= version[0] <= "Z":
        letter = version[0]
        servo = ServoClass.GTOCP2 if letter < "G" else ServoClass.GTOCP3
        return letter, servo
    raise ProtocolMismatch(f"Unrecognised AP firmware version {version!r}", ":V#", version)


class APProtocol(MountProtocol):
    """
    Command layer for Astro-Physics GTO controllers.

    Attributes:
        tracking (bool): False after ``:RT9#``.  A stopped mount drifts in RA,
            so stasis is then sampled on Az/Alt instead.
    """

    family = Family.AP
    terminator = b"#"

    def __init__(self, transport: Transport):
        super().__init__(transport)
        self.tracking = True

    async def expect_ack(self, frame: str, ack: str = "1") -> None:
        """Sends a set-type command and checks its one character acknowledgment."""
        try:
            response = await self.query_exact(frame, len(ack))
        except ReadTimeout as e:
            raise self.mismatch(frame, "", repr(ack)) from e
        if response != ack:
            raise self.mismatch(frame, response, repr(ack))

    # --- handshake ---

    async def handshake(self) -> Capabilities:
        await self.send("#")
        await self.set_backlash_compensation()
        caps = await self.identify()
        await self.ensure_long_format()
        return caps

    async def set_backlash_compensation(self) -> None:
        """Zero backlash; fresh connections usually ignore the first attempt."""
        try:
            await self.expect_ack(BACKLASH_FRAME)
        except ProtocolMismatch:
            logger.debug("Backlash compensation not acknowledged, sending again")
            await self.expect_ack(BACKLASH_FRAME)

    async def identify(self) -> Capabilities:
        version = await self.query(":V#")
        letter, servo = parse_version(version)
        self.capabilities = Capabilities(
            family=Family.AP,
            version=version,
            firmware=letter,
            servo=servo,
            supports_pier_side=True,
            supports_park_status=letter >= "T",
            supports_pec=True,
        )
        logger.info("Servo box controller %s, firmware %s (%s)", servo.value, letter, version)
        return self.capabilities

    async def configure_rates(self, slew: SlewConfig) -> None:
        await self.set_jog_rate(slew.jog_rate)
        await self.set_slew_rate(slew.goto_rate)

    async def ensure_long_format(self) -> None:
        reply = await self.query(":GR#")
        if is_short_format(reply):
            logger.info("Switching controller to long coordinate format")
            await self.send(":U#")

    # --- session setup ---

    async def read_radec(self) -> Tuple[float, float]:
        ra = parse_sexagesimal(await self.query(":GR#"))
        dec = parse_sexagesimal(await self.query(":GD#"))
        return ra, dec

    async def is_initialized(self) -> bool:
        ra, dec = await self.read_radec()
        return not is_uninitialized(ra, dec)

    async def initialize(self) -> None:
        await self.send(":PO#")
        await self.send(":Q#")

    async def park_status(self) -> ParkStatus:
        if not self.capabilities or not self.capabilities.supports_park_status:
            return ParkStatus.UNKNOWN
        reply = await self.query(":GOS#")
        return ParkStatus.PARKED if reply.startswith("P") else ParkStatus.UNPARKED

    async def set_time(self, utc: datetime, offset_hours: float) -> None:
        year, month, day, hour, minute, second = astro.zonedate_from_utc(
            utc, offset_hours * 3600.0
        )
        await self.expect_ack(f":SL {format_clock(hour, minute, second)}#")
        await self.expect_ack(f":SC {format_date(year, month, day)}#")
        await self.expect_ack(f":SG {format_utc_offset(offset_hours)}#")

    async def get_utc_offset(self) -> float:
        return parse_sexagesimal(await self.query(":GG#"))

    async def set_location(self, site: Site) -> None:
        await self.expect_ack(f":Sg {format_longitude(site.longitude)}#")
        await self.expect_ack(f":St {format_signed_degrees(site.latitude)}#")

    # --- motion ---

    async def set_object(self, target: EquatorialCoord) -> None:
        await self.expect_ack(f":Sr {format_ra(target.ra)}#")
        await self.expect_ack(f":Sd {format_signed_degrees(target.dec)}#")

    async def slew(self) -> None:
        """``:MS#`` answers ``0`` when the slew starts, an error digit otherwise."""
        try:
            reply = await self.query_exact(":MS#", 1)
        except ReadTimeout as e:
            raise self.mismatch(":MS#", "", "'0'") from e
        if reply == "0":
            return
        reason = SLEW_ERRORS.get(reply)
        if reason:
            logger.error("Slew refused: %s", reason)
            raise ProtocolMismatch(f"Slew refused: {reason}", ":MS#", reply)
        raise self.mismatch(":MS#", reply, "'0'")

    async def goto(self, target: EquatorialCoord, lst: float) -> None:
        await self.set_object(target)
        await self.slew()

    def seed_sample(self, target: EquatorialCoord) -> Optional[Tuple[float, float]]:
        if not self.tracking:
            return None
        return target.ra, target.dec

    async def sync(self, target: EquatorialCoord, lst: float, mode: SyncMode) -> str:
        await self.set_object(target)
        frame = ":CMR#" if mode == SyncMode.CMR else ":CM#"
        return await self.query(frame)

    async def abort(self) -> None:
        await self.send(":Q#")

    async def set_track_mode(self, mode: TrackMode) -> None:
        await self.send(TRACK_MODE_FRAMES[mode])
        self.tracking = mode != TrackMode.OFF

    async def set_track_rate(self, ra_rate: float, dec_rate: float) -> None:
        await self.send(f":RR{format_ap_multiplier(ap_ra_multiplier(ra_rate))}#")
        await self.send(f":RD{format_ap_multiplier(ap_dec_multiplier(dec_rate))}#")

    async def read_pier_side(self) -> PierSide:
        reply = (await self.query(":pS#")).strip()
        if reply == "East":
            return PierSide.EAST
        if reply == "West":
            return PierSide.WEST
        logger.warning("Unexpected pier side reply %r", reply)
        return PierSide.UNKNOWN

    async def read_position(self, lst: float) -> PositionReading:
        ra, dec = await self.read_radec()
        pier = await self.read_pier_side()
        sample = (ra, dec) if self.tracking else await self.read_horizontal()
        return PositionReading(EquatorialCoord(ra, dec), pier, sample=sample)

    async def begin_park(
        self, horizontal: HorizontalCoord, equatorial: EquatorialCoord, lst: float
    ) -> Optional[Tuple[float, float]]:
        await self.expect_ack(f":Sz {format_degrees(horizontal.az)}#")
        await self.expect_ack(f":Sa {format_signed_degrees(horizontal.alt)}#")
        await self.slew()
        return horizontal.az, horizontal.alt

    async def read_horizontal(self) -> Tuple[float, float]:
        az = parse_sexagesimal(await self.query(":GZ#"))
        alt = parse_sexagesimal(await self.query(":GA#"))
        return az, alt

    async def read_park_sample(self, lst: float) -> Tuple[float, float]:
        return await self.read_horizontal()

    async def finish_park(self) -> None:
        await self.send(":KA#")

    async def set_slew_rate(self, index: int) -> None:
        await self.send(f":RS{check_index(index, AP_GOTO_RATES)}#")

    async def set_jog_rate(self, index: int) -> None:
        await self.send(f":RC{check_index(index, AP_JOG_RATES)}#")

    async def set_guide_rate(self, index: int) -> None:
        await self.send(f":RG{check_index(index, GUIDE_RATES)}#")

    async def jog(self, direction: Direction, rate_index: int) -> None:
        await self.set_jog_rate(rate_index)
        await self.send(f":M{direction.value}#")

    async def stop_jog(self, direction: Direction) -> None:
        await self.send(f":Q{direction.value}#")

    async def pulse_guide(self, direction: Direction, duration_ms: int, guide_index: int) -> None:
        duration_ms = max(0, min(MAX_PULSE_MS, int(duration_ms)))
        await self.send(f":M{direction.value}{duration_ms:03d}#")

    async def swap_buttons(self, axis: str) -> None:
        if axis not in ("NS", "EW"):
            raise NotSupported(f"Cannot swap buttons on axis {axis!r}")
        await self.send(f":{axis}#")

    async def set_pec(self, enabled: bool) -> None:
        await self.send(":P#" if enabled else ":p#")
