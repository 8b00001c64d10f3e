"""
Mount driver facade.

Exposes the typed operation surface host adapters call (connect, goto,
sync, park, tracking, jog, pulse guide, status polling) and orchestrates the
command layer, the coordinate engine and the state machine.  Every public
operation holds :attr:`MountDriver.lock` for its complete command/response
sequence, so the periodic status poll never interleaves with a client
command.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from . import astro
from .ap_protocol import APProtocol
from .coordinates import hour_angle, mount_az_from_public, public_az_from_mount
from .errors import (
    InitializationRequired,
    InvalidState,
    MountError,
    NotSupported,
    OutOfRange,
)
from .model import (
    SIDEREAL_RATE,
    Capabilities,
    ClockReference,
    Direction,
    EquatorialCoord,
    Family,
    HorizontalCoord,
    MountState,
    MountStatus,
    ParkStatus,
    PierSide,
    Site,
    SlewConfig,
    SyncMode,
    TrackMode,
)
from .pmc_protocol import PMCProtocol
from .protocol import MountProtocol
from .rates import AP_GOTO_RATES, AP_JOG_RATES, GUIDE_RATES, PMC_JOG_RATES, check_index
from .state import GOTO_FROM, MOVABLE, MountStateMachine
from .transport import Transport

logger = logging.getLogger(__name__)

PREEMPT_DELAY = 0.1  # seconds between aborting a slew and starting the next


class MountDriver:
    """
    High-level mount control.

    Attributes:
        transport (Transport): Channel to the controller, owned by the caller.
        family (Family | None): Controller family, or None to probe PMC then AP.
        slew (SlewConfig): GOTO, jog and guide rate indices.
        sync_mode (SyncMode): Regular or CMR sync (AP only).
        park_position (HorizontalCoord | None): Park target, north-origin azimuth.
        clock (callable): Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        transport: Transport,
        family: Optional[Family] = None,
        slew: Optional[SlewConfig] = None,
        sync_mode: SyncMode = SyncMode.REGULAR,
        park_position: Optional[HorizontalCoord] = None,
        stasis_samples: int = 2,
        ap_epsilon: float = 0.0,
        pmc_epsilon_counts: float = 1.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.transport = transport
        self.family = family
        self.slew = slew or SlewConfig()
        self.sync_mode = sync_mode
        self.park_position = park_position
        self.ap_epsilon = ap_epsilon
        self.pmc_epsilon_counts = pmc_epsilon_counts
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.lock = asyncio.Lock()

        self.protocol: Optional[MountProtocol] = None
        self.capabilities: Optional[Capabilities] = None
        self.machine = MountStateMachine(stasis_samples)

        self.site: Optional[Site] = None
        self.clock_reference: Optional[ClockReference] = None
        self.time_set = False
        self.location_set = False
        self.initialized = False

        self.target: Optional[EquatorialCoord] = None
        self.current: Optional[EquatorialCoord] = None
        self.pier_side = PierSide.UNKNOWN
        self.track_mode = TrackMode.SIDEREAL
        self.custom_rates = (SIDEREAL_RATE, 0.0)
        self.motion_commanded = False

    @property
    def state(self) -> MountState:
        return self.machine.state

    @property
    def tracking(self) -> bool:
        return self.machine.tracking

    @property
    def ready(self) -> bool:
        return self.time_set and self.location_set and self.initialized

    def _protocol(self) -> MountProtocol:
        self.machine.require_connected("This operation")
        return self.protocol

    def _require_ready(self, operation: str) -> None:
        if not self.ready:
            missing = [
                name
                for name, done in (
                    ("time", self.time_set),
                    ("location", self.location_set),
                    ("mount initialisation", self.initialized),
                )
                if not done
            ]
            raise InitializationRequired(f"{operation} needs {', '.join(missing)}")

    def lst(self) -> float:
        longitude = self.site.longitude if self.site else 0.0
        return astro.local_sidereal_time(longitude, self.clock())

    # --- session ---

    async def connect(self) -> Capabilities:
        """Opens the transport and identifies the controller."""
        async with self.lock:
            if not self.transport.connected:
                await self.transport.open()
            try:
                caps = await self._handshake()
            except MountError:
                await self.transport.close()
                raise
            self.machine.connect()
            return caps

    async def handshake(self) -> Capabilities:
        async with self.lock:
            return await self._handshake()

    def _make_protocol(self, family: Family) -> MountProtocol:
        if family == Family.PMC:
            return PMCProtocol(self.transport, self.pmc_epsilon_counts)
        protocol = APProtocol(self.transport)
        protocol.stasis_epsilon = (self.ap_epsilon, self.ap_epsilon)
        return protocol

    async def _handshake(self) -> Capabilities:
        if self.family is not None:
            candidates = [self.family]
        else:
            candidates = [Family.PMC, Family.AP]
        error: Optional[MountError] = None
        for family in candidates:
            protocol = self._make_protocol(family)
            try:
                self.capabilities = await protocol.handshake()
            except MountError as e:
                logger.info("No %s controller answered: %s", family.name, e)
                error = e
                continue
            self.protocol = protocol
            self.family = family
            logger.info("Connected to %s controller %s", family.name, self.capabilities.version)
            return self.capabilities
        raise error

    async def disconnect(self) -> None:
        async with self.lock:
            await self.transport.close()
            self.machine.disconnect()
            self.time_set = self.location_set = self.initialized = False
            self.motion_commanded = False
            logger.info("Disconnected")

    async def update_time(self, utc: datetime, offset_hours: float = 0.0) -> None:
        async with self.lock:
            protocol = self._protocol()
            await protocol.set_time(utc, offset_hours)
            self.clock_reference = ClockReference(utc, offset_hours)
            self.time_set = True
            await self._maybe_initialize()

    async def update_location(self, latitude: float, longitude: float, elevation: float = 0.0) -> None:
        if not -90.0 <= latitude <= 90.0:
            raise OutOfRange(f"Latitude {latitude} outside [-90, 90]")
        async with self.lock:
            protocol = self._protocol()
            site = Site(latitude, longitude, elevation)
            await protocol.set_location(site)
            self.site = site
            self.location_set = True
            if self.park_position is None:
                self._set_default_park()
            await self._maybe_initialize()

    async def get_utc_offset(self) -> float:
        async with self.lock:
            return await self._protocol().get_utc_offset()

    async def _maybe_initialize(self) -> None:
        if self.initialized or not (self.time_set and self.location_set):
            return
        protocol = self.protocol
        if not await protocol.is_initialized():
            logger.info("Mount is not initialised, initialising")
            await protocol.initialize()
        self.initialized = True
        logger.info("Mount initialised")

        if await protocol.park_status() == ParkStatus.PARKED:
            self.machine.parked()
            logger.info("Mount reports it is parked")
        else:
            # the mount always starts unparked unless it says otherwise
            await self._enable_tracking()
        await protocol.configure_rates(self.slew)

    # --- motion ---

    @staticmethod
    def _check_coord(ra: float, dec: float) -> EquatorialCoord:
        if not 0.0 <= ra < 24.0:
            raise OutOfRange(f"RA {ra} outside [0, 24)")
        if not -90.0 <= dec <= 90.0:
            raise OutOfRange(f"Dec {dec} outside [-90, 90]")
        return EquatorialCoord(ra, dec)

    async def goto(self, ra: float, dec: float) -> None:
        target = self._check_coord(ra, dec)
        async with self.lock:
            protocol = self._protocol()
            self.machine.require(GOTO_FROM, "Goto")
            self._require_ready("Goto")
            if self.state == MountState.SLEWING:
                logger.info("Aborting current slew")
                await protocol.abort()
                await asyncio.sleep(PREEMPT_DELAY)
            await protocol.goto(target, self.lst())
            self.target = target
            self.motion_commanded = True
            self.machine.start_slew(protocol.seed_sample(target))
            logger.info("Slewing to RA %.5f Dec %.5f", ra, dec)

    async def sync(self, ra: float, dec: float, mode: Optional[SyncMode] = None) -> str:
        target = self._check_coord(ra, dec)
        async with self.lock:
            protocol = self._protocol()
            self.machine.require(MOVABLE, "Sync")
            self._require_ready("Sync")
            reply = await protocol.sync(target, self.lst(), mode or self.sync_mode)
            self.current = target
            logger.info("Synced to RA %.5f Dec %.5f", ra, dec)
            return reply

    async def abort(self) -> None:
        async with self.lock:
            protocol = self._protocol()
            await protocol.abort()
            if self.state != MountState.PARKED:
                await protocol.set_track_mode(TrackMode.OFF)
            self.machine.abort()
            logger.info("Motion aborted")

    # --- parking ---

    def _set_default_park(self) -> None:
        latitude = self.site.latitude
        self.park_position = HorizontalCoord(0.0 if latitude > 0 else 180.0, abs(latitude))

    async def set_default_park(self) -> HorizontalCoord:
        async with self.lock:
            if self.site is None:
                raise InitializationRequired("Default park position needs the site location")
            self._set_default_park()
            return self.park_position

    async def set_current_park(self) -> HorizontalCoord:
        async with self.lock:
            protocol = self._protocol()
            if self.site is None:
                raise InitializationRequired("Park position needs the site location")
            reading = await protocol.read_position(self.lst())
            az, alt = astro.horizontal_from_equatorial(
                reading.coord.ra, reading.coord.dec, self.site, self.clock()
            )
            self.park_position = HorizontalCoord(public_az_from_mount(az), alt)
            logger.info("Park position set to Az %.4f Alt %.4f", self.park_position.az, alt)
            return self.park_position

    async def park(self) -> None:
        async with self.lock:
            protocol = self._protocol()
            self.machine.require(MOVABLE, "Park")
            self._require_ready("Park")
            if self.park_position is None:
                self._set_default_park()
            park = self.park_position
            ra, dec = astro.equatorial_from_horizontal(
                mount_az_from_public(park.az), park.alt, self.site, self.clock()
            )
            seed = await protocol.begin_park(park, EquatorialCoord(ra, dec), self.lst())
            self.motion_commanded = True
            self.machine.start_park(seed)
            logger.info("Parking at Az %.4f Alt %.4f", park.az, park.alt)

    async def unpark(self) -> None:
        async with self.lock:
            protocol = self._protocol()
            self.machine.require([MountState.PARKED], "UnPark")
            await protocol.unpark()
            await self._send_tracking(True)
            self.machine.unpark()
            logger.info("Mount unparked")

    # --- tracking ---

    async def _send_tracking(self, enabled: bool) -> None:
        protocol = self.protocol
        if not enabled:
            await protocol.set_track_mode(TrackMode.OFF)
            return
        await protocol.set_track_mode(self.track_mode)
        if self.track_mode == TrackMode.CUSTOM:
            await protocol.set_track_rate(*self.custom_rates)

    async def _enable_tracking(self) -> None:
        await self._send_tracking(True)
        self.machine.set_tracking(True)

    async def set_tracking(self, enabled: bool) -> None:
        async with self.lock:
            self._protocol()
            if enabled and self.track_mode == TrackMode.OFF:
                self.track_mode = TrackMode.SIDEREAL
            if enabled and self.state in (MountState.PARKED, MountState.PARKING):
                raise InvalidState(f"Cannot track while {self.state.name}")
            await self._send_tracking(enabled)
            self.machine.set_tracking(enabled)

    async def set_track_mode(self, mode: TrackMode) -> None:
        async with self.lock:
            self._protocol()
            if mode == TrackMode.OFF:
                await self._send_tracking(False)
                self.machine.set_tracking(False)
                return
            self.track_mode = mode
            if self.tracking:
                await self._send_tracking(True)

    async def set_track_rate(self, ra_rate: float, dec_rate: float) -> None:
        """
        Custom rates in arcsec/s; RA is the absolute rate, not an offset.

        With tracking off the rates are only stored; they are sent once
        tracking is enabled in CUSTOM mode.
        """
        async with self.lock:
            protocol = self._protocol()
            protocol.check_track_rate(ra_rate, dec_rate)
            if self.tracking:
                await protocol.set_track_rate(ra_rate, dec_rate)
            else:
                logger.debug("Tracking is off, holding custom rates")
            self.custom_rates = (ra_rate, dec_rate)

    # --- manual motion and guiding ---

    def _require_free(self, operation: str) -> None:
        if self.state in (MountState.SLEWING, MountState.PARKING, MountState.PARKED):
            raise InvalidState(f"{operation} is not allowed while {self.state.name}")

    async def jog(self, direction: Direction, rate_index: Optional[int] = None) -> None:
        async with self.lock:
            protocol = self._protocol()
            self._require_free("Jog")
            index = self.slew.jog_rate if rate_index is None else rate_index
            table = PMC_JOG_RATES if self.family == Family.PMC else AP_JOG_RATES
            check_index(index, table)
            await protocol.jog(direction, index)
            self.motion_commanded = True

    async def stop_jog(self, direction: Direction) -> None:
        async with self.lock:
            await self._protocol().stop_jog(direction)

    async def pulse_guide(self, direction: Direction, duration_ms: int) -> None:
        async with self.lock:
            protocol = self._protocol()
            self._require_free("PulseGuide")
            if (
                self.family == Family.AP
                and self.capabilities.firmware == "E"
                and self.motion_commanded
            ):
                # GTOCP2 firmware E forgets the guide rate after any motion
                await protocol.set_guide_rate(self.slew.guide_rate)
                self.motion_commanded = False
            await protocol.pulse_guide(direction, duration_ms, self.slew.guide_rate)

    async def set_slew_rate(self, index: int) -> None:
        check_index(index, AP_GOTO_RATES)
        async with self.lock:
            await self._protocol().set_slew_rate(index)
            self.slew.goto_rate = index

    async def set_jog_rate(self, index: int) -> None:
        check_index(index, PMC_JOG_RATES if self.family == Family.PMC else AP_JOG_RATES)
        self.slew.jog_rate = index

    async def set_guide_rate(self, index: int) -> None:
        check_index(index, GUIDE_RATES)
        async with self.lock:
            await self._protocol().set_guide_rate(index)
            self.slew.guide_rate = index

    def set_sync_mode(self, mode: SyncMode) -> None:
        if mode == SyncMode.CMR and self.family == Family.PMC:
            raise NotSupported("CMR sync is only available on AP mounts")
        self.sync_mode = mode

    async def swap_buttons(self, axis: str) -> None:
        async with self.lock:
            await self._protocol().swap_buttons(axis)

    async def set_pec(self, enabled: bool) -> None:
        async with self.lock:
            await self._protocol().set_pec(enabled)

    # --- status ---

    async def read_status(self) -> MountStatus:
        """
        Polls the position and advances SLEWING/PARKING when it has settled.

        Errors propagate and leave the state untouched.
        """
        async with self.lock:
            protocol = self._protocol()
            lst = self.lst()
            reading = await protocol.read_position(lst)
            self.current = reading.coord
            self.pier_side = reading.pier_side

            if self.state == MountState.SLEWING:
                if self.machine.observe(reading.sample, protocol.stasis_epsilon):
                    logger.info("Slew complete, %s", self.state.name.lower())
                    if self.tracking:
                        await protocol.resume_tracking()
            elif self.state == MountState.PARKING:
                sample = await protocol.read_park_sample(lst)
                if self.machine.observe(sample, protocol.stasis_epsilon):
                    await protocol.finish_park()
                    await protocol.set_track_mode(TrackMode.OFF)
                    self.machine.parked()
                    logger.info("Mount parked")

            horizontal = None
            if self.site is not None:
                az, alt = astro.horizontal_from_equatorial(
                    reading.coord.ra, reading.coord.dec, self.site, self.clock()
                )
                horizontal = HorizontalCoord(public_az_from_mount(az), alt)
            return MountStatus(
                ra=reading.coord.ra,
                dec=reading.coord.dec,
                pier_side=reading.pier_side,
                state=self.state,
                hour_angle=hour_angle(reading.coord.ra, lst),
                horizontal=horizontal,
                tracking=self.tracking,
            )
