"""
Sexagesimal fields used on the AP serial protocol.
"""

import re

from .errors import ProtocolMismatch

_SEPARATORS = re.compile(r"[:*'\xdf\xb0]")


def format_ra(hours: float) -> str:
    """``HH:MM:SS.S`` on a 24 hour clock."""
    tenths = int(round(hours * 36000.0)) % (24 * 36000)
    h, rem = divmod(tenths, 36000)
    m, rem = divmod(rem, 600)
    return f"{h:02d}:{m:02d}:{rem // 10:02d}.{rem % 10}"


def format_signed_degrees(degrees: float) -> str:
    """``sDD*MM:SS`` with an explicit sign."""
    sign = "-" if degrees < 0 else "+"
    total = int(round(abs(degrees) * 3600.0))
    d, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    return f"{sign}{d:02d}*{m:02d}:{s:02d}"


def format_degrees(degrees: float) -> str:
    """``DDD*MM:SS`` for angles in [0, 360)."""
    total = int(round(degrees * 3600.0)) % (360 * 3600)
    d, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    return f"{d:03d}*{m:02d}:{s:02d}"


def format_longitude(lon_east: float) -> str:
    """AP controllers count longitude westward from Greenwich."""
    return format_degrees((360.0 - lon_east) % 360.0)


def parse_longitude(text: str) -> float:
    return (360.0 - parse_sexagesimal(text)) % 360.0


def format_clock(hours: int, minutes: int, seconds: int) -> str:
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def format_date(year: int, month: int, day: int) -> str:
    return f"{month:02d}/{day:02d}/{year % 100:02d}"


def format_utc_offset(offset_hours: float) -> str:
    """The controller expects the magnitude of the offset only."""
    total = int(round(abs(offset_hours) * 3600.0))
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    return format_clock(h, m, s)


def parse_sexagesimal(text: str) -> float:
    """
    Parses ``HH:MM:SS.S``, ``HH:MM.T``, ``sDD*MM:SS``, ``sDD*MM`` and
    ``DDD*MM:SS`` into a decimal value of the leading unit.
    """
    raw = text.strip().rstrip("#")
    if not raw:
        raise ProtocolMismatch("Empty sexagesimal field", response=text)
    sign = 1.0
    if raw[0] in "+-":
        if raw[0] == "-":
            sign = -1.0
        raw = raw[1:]
    try:
        parts = [float(p) for p in _SEPARATORS.split(raw) if p != ""]
    except ValueError as e:
        raise ProtocolMismatch(f"Malformed sexagesimal field {text!r}", response=text) from e
    if not parts or len(parts) > 3:
        raise ProtocolMismatch(f"Malformed sexagesimal field {text!r}", response=text)
    value = 0.0
    for i, part in enumerate(parts):
        value += part / (60.0**i)
    return sign * value


def is_short_format(text: str) -> bool:
    """True for the low-precision ``HH:MM.T`` RA reply."""
    raw = text.strip().rstrip("#")
    return raw.count(":") == 1 and "." in raw
