"""
Explore Scientific PMC-Eight controller model.

Keeps both axes as motor counts.  ``ESPt`` targets are approached at a fixed
GOTO speed, ``ESSr`` moves run at the programmed counts per second and the
RA axis creeps at the ``ESTr`` precise rate while tracking.
"""

import logging

from ..coordinates import AXIS_SCALE, decode_counts, encode_counts

logger = logging.getLogger(__name__)

AXES = (0, 1)


class PMCScope:
    """
    Simulated PMC-Eight board.

    Attributes:
        board (str): Firmware/board tag returned after ``ESGvES``.
        counts (list[float]): Current RA and Dec motor counts.
        targets (list[float | None]): GOTO target per axis, None when idle.
        slew_speed (float): GOTO speed in degrees per second.
    """

    def __init__(self, board="06B9T9", ra_counts=0, dec_counts=0, slew_speed=4.0):
        self.board = board
        self.counts = [float(ra_counts), float(dec_counts)]
        self.targets = [None, None]
        self.directions = [1, 1]
        self.move_rates = [0, 0]
        self.precise_rate = 0
        self.slew_speed = slew_speed
        self.commands = []
        self._buffer = b""

    @property
    def slew_counts_per_second(self):
        return self.slew_speed * AXIS_SCALE / 360.0

    def axis_rate(self, axis):
        """What ``ESGr`` reports: the speed the axis currently turns at."""
        if self.targets[axis] is not None:
            return min(0xFFFF, int(self.slew_counts_per_second))
        if self.move_rates[axis]:
            return self.move_rates[axis]
        if axis == 0:
            return int(round(self.precise_rate / 25.0))
        return 0

    def tick(self, dt):
        if dt <= 0:
            return
        sign = 1 if self.directions[0] else -1
        drift = sign * self.precise_rate / 25.0 * dt
        self.counts[0] += drift
        if self.targets[0] is not None:
            self.targets[0] += drift
        for axis in AXES:
            if self.move_rates[axis]:
                step = self.move_rates[axis] * dt
                self.counts[axis] += step if self.directions[axis] else -step
            target = self.targets[axis]
            if target is None:
                continue
            step = self.slew_counts_per_second * dt
            delta = target - self.counts[axis]
            if abs(delta) <= step:
                self.counts[axis] = target
                self.targets[axis] = None
                logger.debug("Axis %d reached %d", axis, int(round(target)))
            else:
                self.counts[axis] += step if delta > 0 else -step

    @property
    def slewing(self):
        return any(t is not None for t in self.targets)

    def position(self, axis):
        return encode_counts(int(round(self.counts[axis])))

    def handle_msg(self, data: bytes) -> bytes:
        self._buffer += data
        replies = []
        while b"!" in self._buffer:
            raw, self._buffer = self._buffer.split(b"!", 1)
            cmd = raw.decode("ascii", errors="ignore").strip()
            if not cmd:
                continue
            self.commands.append(cmd + "!")
            reply = self.handle_command(cmd)
            if reply:
                replies.append(reply + "!")
        return "".join(replies).encode("ascii")

    def handle_command(self, cmd):
        if not cmd.startswith("ES") or len(cmd) < 4:
            logger.debug("Unhandled PMC command %s!", cmd)
            return ""
        op, args = cmd[2:4], cmd[4:]
        if op == "Gv":
            return "ESGvES" + self.board
        axis = int(args[0]) if args[:1].isdigit() else None
        if axis not in AXES and op != "Tr":
            logger.debug("Bad axis in %s!", cmd)
            return ""
        if op == "Gp":
            return f"ESGp{axis}{self.position(axis)}"
        if op == "Sp":
            self.counts[axis] = float(decode_counts(args[1:7]))
            self.targets[axis] = None
            return f"ESGp{axis}{self.position(axis)}"
        if op == "Pt":
            self.targets[axis] = float(decode_counts(args[1:7]))
            self.move_rates[axis] = 0
            return f"ESGt{axis}{args[1:7]}"
        if op == "Tr":
            self.precise_rate = int(args, 16)
            return cmd
        if op == "Sr":
            self.move_rates[axis] = int(args[1:], 16)
            self.targets[axis] = None
            return cmd
        if op == "Sd":
            self.directions[axis] = int(args[1])
            return cmd
        if op == "Gd":
            return f"ESGd{axis}{self.directions[axis]}"
        if op == "Gr":
            return f"ESGr{axis}{self.axis_rate(axis):04X}"
        logger.debug("Unhandled PMC command %s!", cmd)
        return ""

    def status_line(self) -> str:
        state = "slewing" if self.slewing else "tracking" if self.precise_rate else "idle"
        return f"PMC RA {int(round(self.counts[0]))} Dec {int(round(self.counts[1]))} {state}"
