"""
Data model shared by the command layers, the state machine and the driver.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


SIDEREAL_RATE = 15.04106864  # arcsec/s
LUNAR_RATE = 14.453
SOLAR_RATE = 15.0


class MountState(Enum):
    """Lifecycle states of a mount session."""

    DISCONNECTED = "disconnected"
    IDLE = "idle"
    TRACKING = "tracking"
    SLEWING = "slewing"
    PARKING = "parking"
    PARKED = "parked"


class PierSide(Enum):
    EAST = "east"
    WEST = "west"
    UNKNOWN = "unknown"


class TrackMode(Enum):
    SIDEREAL = "sidereal"
    LUNAR = "lunar"
    SOLAR = "solar"
    CUSTOM = "custom"
    OFF = "off"


TRACK_MODE_RATES = {
    TrackMode.SIDEREAL: SIDEREAL_RATE,
    TrackMode.LUNAR: LUNAR_RATE,
    TrackMode.SOLAR: SOLAR_RATE,
    TrackMode.OFF: 0.0,
}


class Family(Enum):
    AP = "ap"
    PMC = "pmc"


class ServoClass(Enum):
    """Astro-Physics controller generations."""

    GTOCP2 = "GTOCP2"
    GTOCP3 = "GTOCP3"
    GTOCP4 = "GTOCP4"
    NONE = "none"


class SyncMode(Enum):
    REGULAR = "regular"
    CMR = "cmr"


class Direction(Enum):
    """Manual motion and pulse-guide directions, valued by AP wire letter."""

    NORTH = "n"
    SOUTH = "s"
    EAST = "e"
    WEST = "w"


class ParkStatus(Enum):
    PARKED = "parked"
    UNPARKED = "unparked"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Site:
    """Observer location; longitude is east-positive and normalised to [0, 360)."""

    latitude: float
    longitude: float
    elevation: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "longitude", self.longitude % 360.0)


@dataclass(frozen=True)
class ClockReference:
    utc: datetime
    utc_offset: float = 0.0  # hours


@dataclass(frozen=True)
class EquatorialCoord:
    ra: float  # hours
    dec: float  # degrees


@dataclass(frozen=True)
class HorizontalCoord:
    az: float  # degrees, north origin
    alt: float  # degrees


@dataclass(frozen=True)
class MotorCounts:
    ra_counts: int
    dec_counts: int


@dataclass
class Capabilities:
    """What the handshake learned about the connected controller."""

    family: Family
    version: str = ""
    firmware: str = ""
    servo: ServoClass = ServoClass.NONE
    board: str = ""
    supports_pier_side: bool = False
    supports_park_status: bool = False
    supports_pec: bool = False


@dataclass
class SlewConfig:
    """Rate indices selected by the host (see ``gem_mount.rates`` tables)."""

    goto_rate: int = 2
    jog_rate: int = 1
    guide_rate: int = 2


@dataclass
class MountStatus:
    """Snapshot returned by ``MountDriver.read_status``."""

    ra: float
    dec: float
    pier_side: PierSide
    state: MountState
    hour_angle: float = 0.0
    horizontal: Optional[HorizontalCoord] = None
    tracking: bool = False
