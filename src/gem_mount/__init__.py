"""
Driver core for Astro-Physics GTO and Explore Scientific PMC-Eight German
equatorial mounts, with an INDI front end and bundled simulators.
"""

from .driver import MountDriver
from .errors import (
    InitializationRequired,
    InvalidState,
    MountError,
    NotSupported,
    OutOfRange,
    ProtocolMismatch,
    ReadTimeout,
    TransportError,
)
from .model import Direction, Family, MountState, PierSide, SyncMode, TrackMode
from .transport import SerialTransport

__version__ = "0.3.0"
