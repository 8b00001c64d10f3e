"""
Motion and rate translation.

Maps sidereal multiples and arcsec/s rates to the integers and decimal
multipliers each controller family accepts, including the family-specific
ceilings.
"""

from .coordinates import AXIS_SCALE
from .errors import OutOfRange
from .model import SIDEREAL_RATE

ARCSEC_IN_CIRCLE = 1296000.0

AP_MULTIPLIER_LIMIT = 998.9999
PMC_MAX_PRECISE_RATE = 2641
PMC_MAX_MOVE_RATE = 256 * 15
PMC_MIN_SLEW_RATE = 55

# Index -> sidereal multiple, in the order the AP :RS/:RC/:RG commands number them
AP_GOTO_RATES = (600, 900, 1200)
AP_JOG_RATES = (12, 64, 600, 1200)
GUIDE_RATES = (0.25, 0.5, 1.0)

PMC_JOG_RATES = (4, 16, 64, 256)


def _clamp(value, limit):
    return max(-limit, min(limit, value))


def ap_ra_multiplier(rate: float) -> float:
    """
    RA tracking rate in arcsec/s as the offset-from-sidereal multiplier of
    ``:RR``.  Zero tracks at sidereal, -1 halts the axis.
    """
    return _clamp((rate - SIDEREAL_RATE) / SIDEREAL_RATE, AP_MULTIPLIER_LIMIT)


def ap_dec_multiplier(rate: float) -> float:
    return _clamp(rate / SIDEREAL_RATE, AP_MULTIPLIER_LIMIT)


def format_ap_multiplier(multiplier: float) -> str:
    return f"{multiplier:+.4f}"


def pmc_precise_rate(rate: float) -> int:
    """Precise tracking rate (``ESTr``) in units of 1/25 count per second."""
    mrate = int(round(25.0 * rate * AXIS_SCALE / ARCSEC_IN_CIRCLE))
    return _clamp(mrate, PMC_MAX_PRECISE_RATE)


def pmc_move_rate(rate: float) -> int:
    """Signed move rate (``ESSr``) in counts per second."""
    mrate = int(round(rate * AXIS_SCALE / ARCSEC_IN_CIRCLE))
    return _clamp(mrate, PMC_MAX_MOVE_RATE)


def pmc_jog_rate(index: int) -> float:
    """Jog speed in arcsec/s for a rate index 0..3."""
    return PMC_JOG_RATES[index] * 15.0


def guide_rate_arcsec(index: int) -> float:
    return GUIDE_RATES[index] * SIDEREAL_RATE


def check_index(index: int, table) -> int:
    if not 0 <= index < len(table):
        raise OutOfRange(f"Rate index {index} outside 0..{len(table) - 1}")
    return index
