"""
Astro-Physics GTO controller model.

Answers the ``#`` terminated command set the driver uses and moves a
simulated pointing in RA/Dec.  An untracked mount keeps its hour angle, so
its RA creeps forward with sidereal time; slews to Alt/Az coordinates end
untracked so the horizontal position holds still.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from .. import astro
from ..coordinates import (
    destination_pier_side,
    mount_az_from_public,
    normalize_ra,
    public_az_from_mount,
)
from ..model import PierSide, Site
from ..rates import AP_JOG_RATES, GUIDE_RATES
from ..sexagesimal import (
    format_degrees,
    format_ra,
    format_signed_degrees,
    format_utc_offset,
    parse_sexagesimal,
)

logger = logging.getLogger(__name__)

SIDEREAL_PER_SOLAR = 1.00273790935


class APScope:
    """
    Simulated GTO servo box.

    Attributes:
        version (str): Reply to ``:V#``.
        initialized (bool): False models a box fresh from power-up, which
            reports RA 0 and Dec 90 until ``:PO#``.
        backlash_quirk (bool): Ignore the first backlash command of a session.
        slew_speed (float): Degrees per second on each axis.
    """

    def __init__(
        self,
        version: str = "VCP4-P01-01",
        site: Optional[Site] = None,
        ra: float = 0.0,
        dec: float = 90.0,
        initialized: bool = False,
        parked: bool = False,
        backlash_quirk: bool = True,
        long_format: bool = True,
        slew_speed: float = 4.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.version = version
        self.site = site or Site(50.1822, 19.7925, 400)
        self.ra = ra
        self.dec = dec
        self.initialized = initialized
        self.parked = parked
        self.backlash_quirk = backlash_quirk
        self.long_format = long_format
        self.slew_speed = slew_speed
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self.tracking = False
        self.slewing = False
        self.target_ra = 0.0
        self.target_dec = 0.0
        self.target_is_horizontal = False
        self.object_ra = 0.0
        self.object_dec = 0.0
        self.object_az = 0.0
        self.object_alt = 0.0
        self.last_object = "equatorial"
        self.jog = {}  # direction letter -> deg/s
        self.ra_rate = 0.0
        self.dec_rate = 0.0
        self.utc_offset = 0.0
        self.slew_rate = 0
        self.jog_rate = 0
        self.guide_rate = 2
        self.pec = False
        self.swapped = {"NS": False, "EW": False}
        self.commands = []
        self._buffer = b""
        self._backlash_seen = False

    # --- physics ---

    def tick(self, dt: float) -> None:
        if dt <= 0 or not self.initialized:
            return
        drift = dt * SIDEREAL_PER_SOLAR / 3600.0
        if not self.tracking:
            self.ra = normalize_ra(self.ra + drift)
        if self.slewing:
            if self.target_is_horizontal:
                self.target_ra = normalize_ra(self.target_ra + drift)
            self._approach(dt)
        for direction, speed in self.jog.items():
            step = speed * dt
            if direction == "n":
                self.dec = min(90.0, self.dec + step)
            elif direction == "s":
                self.dec = max(-90.0, self.dec - step)
            elif direction == "w":
                self.ra = normalize_ra(self.ra - step / 15.0)
            elif direction == "e":
                self.ra = normalize_ra(self.ra + step / 15.0)

    def _approach(self, dt: float) -> None:
        ra_step = self.slew_speed * dt / 15.0
        dec_step = self.slew_speed * dt
        dra = (self.target_ra - self.ra + 12.0) % 24.0 - 12.0
        ddec = self.target_dec - self.dec
        if abs(dra) <= ra_step:
            self.ra = self.target_ra
        else:
            self.ra = normalize_ra(self.ra + (ra_step if dra > 0 else -ra_step))
        if abs(ddec) <= dec_step:
            self.dec = self.target_dec
        else:
            self.dec += dec_step if ddec > 0 else -dec_step
        if self.ra == self.target_ra and self.dec == self.target_dec:
            self.slewing = False
            if self.target_is_horizontal:
                self.tracking = False
            logger.debug("Simulated slew finished at RA %.4f Dec %.4f", self.ra, self.dec)

    def lst(self) -> float:
        return astro.local_sidereal_time(self.site.longitude, self.clock())

    def reported_radec(self):
        if not self.initialized:
            return 0.0, 90.0
        return self.ra, self.dec

    def horizontal(self):
        ra, dec = self.reported_radec()
        az, alt = astro.horizontal_from_equatorial(ra, dec, self.site, self.clock())
        return public_az_from_mount(az), alt

    # --- protocol ---

    def handle_msg(self, data: bytes) -> bytes:
        """Consumes raw input and returns whatever the controller would answer."""
        self._buffer += data
        replies = []
        while b"#" in self._buffer:
            raw, self._buffer = self._buffer.split(b"#", 1)
            cmd = raw.decode("ascii", errors="ignore").strip()
            if not cmd:
                continue
            self.commands.append(cmd + "#")
            reply = self.handle_command(cmd.lstrip(":"))
            if reply:
                replies.append(reply)
        return "".join(replies).encode("ascii")

    def handle_command(self, cmd: str) -> str:
        if cmd == "V":
            return self.version + "#"
        if cmd.startswith("Br"):
            if self.backlash_quirk and not self._backlash_seen:
                self._backlash_seen = True
                return ""
            return "1"
        if cmd == "GR":
            ra, _ = self.reported_radec()
            if not self.long_format:
                tenths = int(round(ra * 600)) % (24 * 600)
                return f"{tenths // 600:02d}:{(tenths % 600) // 10:02d}.{tenths % 10}#"
            return format_ra(ra) + "#"
        if cmd == "GD":
            _, dec = self.reported_radec()
            return format_signed_degrees(dec) + "#"
        if cmd == "GZ":
            return format_degrees(self.horizontal()[0]) + "#"
        if cmd == "GA":
            return format_signed_degrees(self.horizontal()[1]) + "#"
        if cmd == "GG":
            return format_utc_offset(self.utc_offset) + "#"
        if cmd == "GOS":
            return ("P" if self.parked else "T") + "#"
        if cmd == "pS":
            side = destination_pier_side(self.ra, self.lst())
            return ("East" if side == PierSide.EAST else "West") + "#"
        if cmd == "U":
            self.long_format = not self.long_format
            return ""
        if cmd.startswith("Sr"):
            self.object_ra = parse_sexagesimal(cmd[2:])
            self.last_object = "equatorial"
            return "1"
        if cmd.startswith("Sd"):
            self.object_dec = parse_sexagesimal(cmd[2:])
            self.last_object = "equatorial"
            return "1"
        if cmd.startswith("Sz"):
            self.object_az = parse_sexagesimal(cmd[2:])
            self.last_object = "horizontal"
            return "1"
        if cmd.startswith("Sa"):
            self.object_alt = parse_sexagesimal(cmd[2:])
            self.last_object = "horizontal"
            return "1"
        if cmd.startswith("SG"):
            self.utc_offset = parse_sexagesimal(cmd[2:])
            return "1"
        if cmd.startswith("Sg"):
            self.site = Site(self.site.latitude, 360.0 - parse_sexagesimal(cmd[2:]), self.site.elevation)
            return "1"
        if cmd.startswith("St"):
            self.site = Site(parse_sexagesimal(cmd[2:]), self.site.longitude, self.site.elevation)
            return "1"
        if cmd.startswith("SL") or cmd.startswith("SC"):
            return "1"
        if cmd == "MS":
            return self.start_slew()
        if cmd in ("CM", "CMR"):
            self.ra, self.dec = self.object_ra, self.object_dec
            return "Coordinates matched#"
        if cmd == "Q":
            self.slewing = False
            self.jog.clear()
            return ""
        if cmd in ("Qn", "Qs", "Qe", "Qw"):
            self.jog.pop(cmd[1], None)
            return ""
        if cmd in ("Mn", "Ms", "Me", "Mw"):
            self.jog[cmd[1]] = AP_JOG_RATES[self.jog_rate] * 15.0 / 3600.0
            return ""
        if len(cmd) == 5 and cmd[0] == "M" and cmd[1] in "nsew" and cmd[2:].isdigit():
            self.pulse(cmd[1], int(cmd[2:]))
            return ""
        if cmd.startswith("RT"):
            self.tracking = cmd[2:] != "9"
            return ""
        if cmd.startswith("RR"):
            self.ra_rate = float(cmd[2:])
            return ""
        if cmd.startswith("RD"):
            self.dec_rate = float(cmd[2:])
            return ""
        if cmd.startswith("RS"):
            self.slew_rate = int(cmd[2:])
            return ""
        if cmd.startswith("RC"):
            self.jog_rate = int(cmd[2:])
            return ""
        if cmd.startswith("RG"):
            self.guide_rate = int(cmd[2:])
            return ""
        if cmd == "KA":
            self.parked = True
            self.tracking = False
            self.slewing = False
            return ""
        if cmd == "PO":
            self.initialized = True
            self.parked = False
            self.ra = self.lst()
            self.dec = 90.0
            return ""
        if cmd in ("NS", "EW"):
            self.swapped[cmd] = not self.swapped[cmd]
            return ""
        if cmd in ("P", "p"):
            self.pec = cmd == "P"
            return ""
        logger.debug("Unhandled AP command :%s#", cmd)
        return ""

    def start_slew(self) -> str:
        if self.last_object == "horizontal":
            az, alt = mount_az_from_public(self.object_az), self.object_alt
            ra, dec = astro.equatorial_from_horizontal(az, alt, self.site, self.clock())
            self.target_is_horizontal = True
        else:
            ra, dec = self.object_ra, self.object_dec
            _, alt = astro.horizontal_from_equatorial(ra, dec, self.site, self.clock())
            if alt < 0:
                return "1"
            self.target_is_horizontal = False
        self.target_ra, self.target_dec = ra, dec
        self.slewing = True
        self.parked = False
        return "0"

    def pulse(self, direction: str, duration_ms: int) -> None:
        step = GUIDE_RATES[self.guide_rate] * 15.0 * duration_ms / 1000.0 / 3600.0
        if direction == "n":
            self.dec = min(90.0, self.dec + step)
        elif direction == "s":
            self.dec = max(-90.0, self.dec - step)
        elif direction == "w":
            self.ra = normalize_ra(self.ra - step / 15.0)
        else:
            self.ra = normalize_ra(self.ra + step / 15.0)

    def status_line(self) -> str:
        ra, dec = self.reported_radec()
        state = "slewing" if self.slewing else "tracking" if self.tracking else "idle"
        if self.parked:
            state = "parked"
        return f"AP {format_ra(ra)} {format_signed_degrees(dec)} {state}"
