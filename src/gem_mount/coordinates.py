"""
Coordinate engine.

Pure functions converting between right ascension / declination, hour angle,
PMC motor counts and the horizontal frames used for parking.  Nothing in
this module holds state; local sidereal time is always passed in.
"""

import math

from .errors import OutOfRange
from .model import EquatorialCoord, MotorCounts, PierSide

AXIS_SCALE = 4608000  # motor counts per revolution
COUNTS_MIN = -(2**23)
COUNTS_MAX = 2**23 - 1

INIT_EPSILON = 1e-5


def normalize_ra(hours: float) -> float:
    """Wraps an angle in hours to [0, 24)."""
    hours = math.fmod(hours, 24.0)
    if hours < 0:
        hours += 24.0
    # fmod of a tiny negative number can round up to exactly 24
    return 0.0 if hours >= 24.0 else hours


def normalize_hour_angle(hours: float) -> float:
    """Wraps an hour angle to (-12, +12]."""
    hours = math.fmod(hours, 24.0)
    if hours <= -12.0:
        hours += 24.0
    elif hours > 12.0:
        hours -= 24.0
    return hours


def hour_angle(ra: float, lst: float) -> float:
    return normalize_hour_angle(lst - ra)


def destination_pier_side(ra: float, lst: float) -> PierSide:
    """
    Pier side the mount must use to reach ``ra`` at sidereal time ``lst``.

    Objects east of the meridian (negative hour angle) are reached with the
    tube on the west side of the pier.  An object exactly on the meridian
    resolves to EAST.
    """
    if hour_angle(ra, lst) < 0:
        return PierSide.WEST
    return PierSide.EAST


def ra_to_motor(ra: float, pier: PierSide, lst: float) -> int:
    ha = hour_angle(ra, lst)
    if pier == PierSide.EAST:
        motor_angle = ha - 6.0
    else:
        motor_angle = ha + 6.0
    return int(round(motor_angle * AXIS_SCALE / 24.0))


def dec_to_motor(dec: float, pier: PierSide) -> int:
    if not -90.0 <= dec <= 90.0:
        raise OutOfRange(f"Declination {dec} outside [-90, 90]")
    if pier == PierSide.EAST:
        motor_angle = dec - 90.0
    else:
        motor_angle = -(dec - 90.0)
    return int(round(motor_angle * AXIS_SCALE / 360.0))


def radec_to_motor(ra: float, dec: float, pier: PierSide, lst: float) -> MotorCounts:
    """Motor counts for a target on the given pier side."""
    if pier not in (PierSide.EAST, PierSide.WEST):
        raise OutOfRange(f"Cannot compute motor counts for pier side {pier.name}")
    return MotorCounts(ra_to_motor(ra, pier, lst), dec_to_motor(dec, pier))


def motor_to_radec(counts: MotorCounts, lst: float) -> EquatorialCoord:
    """Inverse of :func:`radec_to_motor`; the Dec sign selects the pier side."""
    motor_angle_ra = 24.0 * counts.ra_counts / AXIS_SCALE
    if counts.dec_counts < 0:
        ha = motor_angle_ra + 6.0
    else:
        ha = motor_angle_ra - 6.0
    ra = normalize_ra(lst - ha)

    motor_angle_dec = 360.0 * counts.dec_counts / AXIS_SCALE
    if motor_angle_dec >= 0:
        dec = 90.0 - motor_angle_dec
    else:
        dec = 90.0 + motor_angle_dec
    return EquatorialCoord(ra, dec)


def pier_side_from_counts(counts: MotorCounts) -> PierSide:
    return PierSide.EAST if counts.dec_counts < 0 else PierSide.WEST


def encode_counts(value: int) -> str:
    """24-bit two's complement, six uppercase hex digits."""
    if not COUNTS_MIN <= value <= COUNTS_MAX:
        raise OutOfRange(f"Motor count {value} does not fit in 24 bits")
    return f"{value & 0xFFFFFF:06X}"


def decode_counts(field: str) -> int:
    value = int(field, 16)
    if value >= 0x800000:
        value -= 0x1000000
    return value


def public_az_from_mount(mount_az: float) -> float:
    """South-origin westward azimuth to north-origin azimuth."""
    return (mount_az + 180.0) % 360.0


def mount_az_from_public(public_az: float) -> float:
    return (public_az - 180.0) % 360.0


def is_uninitialized(ra: float, dec: float, epsilon: float = INIT_EPSILON) -> bool:
    """A powered-up AP mount that never saw a reference reports RA=0 and Dec 0 or 90."""
    if abs(ra) > epsilon:
        return False
    return abs(dec) <= epsilon or abs(dec - 90.0) <= epsilon
