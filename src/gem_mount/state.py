"""
Mount state machine.

Owns the lifecycle state and the stasis detector used to decide when a
slew or park slew has settled.  The machine never talks to the wire; the
driver facade performs the side effects for each transition.
"""

import logging
from typing import Iterable, Optional, Tuple

from .errors import InvalidState
from .model import MountState

logger = logging.getLogger(__name__)

Sample = Tuple[float, float]

MOVABLE = (MountState.IDLE, MountState.TRACKING)
GOTO_FROM = (MountState.IDLE, MountState.TRACKING, MountState.SLEWING)


class MountStateMachine:
    """
    Legal transitions::

        DISCONNECTED -connect-> IDLE
        IDLE/TRACKING/SLEWING -goto-> SLEWING -settled-> TRACKING | IDLE
        IDLE/TRACKING -park-> PARKING -settled-> PARKED -unpark-> TRACKING
        IDLE <-tracking off/on-> TRACKING
        any connected -abort-> IDLE (PARKED stays PARKED)

    Attributes:
        stasis_samples (int): Consecutive identical samples that count as settled.
        tracking (bool): Whether tracking is enabled; decides where a slew settles.
    """

    def __init__(self, stasis_samples: int = 2):
        if stasis_samples < 2:
            raise ValueError("stasis needs at least two samples to compare")
        self.stasis_samples = stasis_samples
        self.state = MountState.DISCONNECTED
        self.tracking = False
        self.last: Optional[Sample] = None
        self._stable = 0

    def __repr__(self):
        return f"MountStateMachine(state={self.state.name}, tracking={self.tracking})"

    def _move(self, new: MountState) -> None:
        if new != self.state:
            logger.debug("State %s -> %s", self.state.name, new.name)
        self.state = new

    def require(self, allowed: Iterable[MountState], operation: str) -> None:
        allowed = tuple(allowed)
        if self.state not in allowed:
            raise InvalidState(f"{operation} is not allowed while {self.state.name}")

    def require_connected(self, operation: str) -> None:
        if self.state == MountState.DISCONNECTED:
            raise InvalidState(f"{operation} requires a connected mount")

    def _seed(self, sample: Optional[Sample]) -> None:
        self.last = sample
        self._stable = 1 if sample is not None else 0

    # --- transitions ---

    def connect(self) -> None:
        self.require([MountState.DISCONNECTED], "Connect")
        self.tracking = False
        self._move(MountState.IDLE)

    def disconnect(self) -> None:
        self.tracking = False
        self._seed(None)
        self._move(MountState.DISCONNECTED)

    def set_tracking(self, enabled: bool) -> None:
        self.require_connected("SetTracking")
        if enabled and self.state in (MountState.PARKED, MountState.PARKING):
            raise InvalidState(f"Cannot track while {self.state.name}")
        self.tracking = enabled
        if self.state in MOVABLE:
            self._move(MountState.TRACKING if enabled else MountState.IDLE)

    def start_slew(self, seed: Optional[Sample] = None) -> None:
        self.require(GOTO_FROM, "Goto")
        self._seed(seed)
        self._move(MountState.SLEWING)

    def start_park(self, seed: Optional[Sample] = None) -> None:
        self.require(MOVABLE, "Park")
        self._seed(seed)
        self._move(MountState.PARKING)

    def parked(self) -> None:
        self.tracking = False
        self._seed(None)
        self._move(MountState.PARKED)

    def unpark(self) -> None:
        self.require([MountState.PARKED], "UnPark")
        self.tracking = True
        self._move(MountState.TRACKING)

    def abort(self) -> None:
        self.require_connected("Abort")
        self._seed(None)
        self.tracking = False
        if self.state != MountState.PARKED:
            self._move(MountState.IDLE)

    # --- stasis ---

    def observe(self, sample: Sample, epsilon: Sample = (0.0, 0.0)) -> bool:
        """
        Feeds one position sample while SLEWING or PARKING.

        Returns True when the last ``stasis_samples`` samples agree within
        ``epsilon``.  A settled slew moves to TRACKING or IDLE here; a
        settled park slew stays PARKING until :meth:`parked` is called, since
        the controller still has to be told to park.
        """
        if self.state not in (MountState.SLEWING, MountState.PARKING):
            return False
        if self.last is not None and all(
            abs(now - before) <= eps for now, before, eps in zip(sample, self.last, epsilon)
        ):
            self._stable += 1
        else:
            self._stable = 1
        self.last = sample
        if self._stable < self.stasis_samples:
            return False
        if self.state == MountState.SLEWING:
            self._seed(None)
            self._move(MountState.TRACKING if self.tracking else MountState.IDLE)
        return True
