"""
AP / PMC-Eight INDI Driver

This module implements an INDI driver for Astro-Physics GTO and Explore
Scientific PMC-Eight German equatorial mounts.  It uses the indipydriver
library for INDI communication; all mount logic lives in
:class:`~gem_mount.driver.MountDriver`, this class only translates INDI
properties to driver calls and publishes the polled status.

Configuration is loaded from config.yaml.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from indipydriver import (
    Device,
    IPyDriver,
    LightMember,
    LightVector,
    NumberMember,
    NumberVector,
    SwitchMember,
    SwitchVector,
    TextMember,
    TextVector,
)

from .config import (
    load_config,
    park_position,
    port_settings,
    save_config,
    slew_config,
    sync_mode,
)
from .driver import MountDriver
from .errors import MountError
from .model import (
    SIDEREAL_RATE,
    Direction,
    Family,
    HorizontalCoord,
    MountState,
    PierSide,
    SyncMode,
    TrackMode,
)
from .rates import AP_GOTO_RATES, AP_JOG_RATES, GUIDE_RATES, PMC_JOG_RATES
from .transport import SerialTransport, Transport

try:
    from indipyserver import IPyServer

    HAS_SERVER = True
except ImportError:
    HAS_SERVER = False

logger = logging.getLogger(__name__)

TRACK_MODE_MEMBERS = {
    "TRACK_SIDEREAL": TrackMode.SIDEREAL,
    "TRACK_SOLAR": TrackMode.SOLAR,
    "TRACK_LUNAR": TrackMode.LUNAR,
    "TRACK_CUSTOM": TrackMode.CUSTOM,
}

BUSY_STATES = (MountState.SLEWING, MountState.PARKING)


class GemMountDriver(IPyDriver):
    """
    INDI Driver for AP and PMC-Eight mounts.

    Manages INDI properties and forwards them to a :class:`MountDriver`
    created on CONNECT.  ``transport_factory`` and ``clock`` can be injected
    to run the driver against a simulator.
    """

    def __init__(
        self,
        driver_name: str = "GEM Mount",
        config: Optional[dict] = None,
        config_path: Optional[str] = None,
        transport_factory: Optional[Callable[[str, int, float], Transport]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config or load_config(config_path)
        self.config_path = config_path
        self.transport_factory = transport_factory or SerialTransport
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        # 1. Define INDI properties
        self._init_properties()

        # 2. Initialize device with properties
        self.device = Device(
            driver_name,
            [
                self.connection_vector,
                self.port_vector,
                self.family_vector,
                self.info_vector,
                self.mount_status_vector,
                self.equatorial_vector,
                self.coord_set_vector,
                self.abort_motion_vector,
                self.park_vector,
                self.park_position_vector,
                self.park_option_vector,
                self.track_state_vector,
                self.track_mode_vector,
                self.track_rate_vector,
                self.motion_ns_vector,
                self.motion_we_vector,
                self.slew_rate_vector,
                self.timed_guide_ns_vector,
                self.timed_guide_we_vector,
                self.location_vector,
                self.time_vector,
                self.pier_side_vector,
                self.horizontal_vector,
                self.hour_angle_vector,
                self.pec_vector,
                self.goto_rate_vector,
                self.guide_rate_vector,
                self.sync_mode_vector,
                self.swap_vector,
            ],
        )

        super().__init__(self.device)

        # 3. Mount driver, created on connect
        self.mount: Optional[MountDriver] = None
        self.poll_interval = float(self.config["status"]["poll_interval"])

    def _init_properties(self) -> None:
        """Initializes all INDI property vectors and members."""
        mnt_cfg = self.config["mount"]
        obs_cfg = self.config["observer"]
        port, baud = port_settings(self.config)

        # Connection
        self.conn_connect = SwitchMember("CONNECT", "Connect", "Off")
        self.conn_disconnect = SwitchMember("DISCONNECT", "Disconnect", "On")
        self.connection_vector = SwitchVector(
            "CONNECTION",
            "Connection",
            "Main",
            "rw",
            "OneOfMany",
            "Idle",
            [self.conn_connect, self.conn_disconnect],
        )

        # Port settings
        self.port_name = TextMember("PORT", "Port", port)
        self.baud_rate = TextMember("BAUD", "Baud Rate", str(baud))
        self.port_vector = TextVector(
            "DEVICE_PORT", "Serial Port", "Connection", "rw", "Idle", [self.port_name, self.baud_rate]
        )

        family = str(self.config["driver"].get("family", "auto")).lower()
        self.family_auto = SwitchMember("AUTO", "Auto detect", "On" if family == "auto" else "Off")
        self.family_ap = SwitchMember("AP", "Astro-Physics", "On" if family == "ap" else "Off")
        self.family_pmc = SwitchMember("PMC", "PMC-Eight", "On" if family == "pmc" else "Off")
        self.family_vector = SwitchVector(
            "MOUNT_FAMILY",
            "Controller",
            "Connection",
            "rw",
            "OneOfMany",
            "Idle",
            [self.family_auto, self.family_ap, self.family_pmc],
        )

        # Firmware Info
        self.info_family = TextMember("FAMILY", "Family", "Unknown")
        self.info_version = TextMember("VERSION", "Version", "Unknown")
        self.info_firmware = TextMember("FIRMWARE", "Firmware", "Unknown")
        self.info_servo = TextMember("SERVO", "Servo Box", "Unknown")
        self.info_vector = TextVector(
            "MOUNT_INFO",
            "Mount Info",
            "Connection",
            "ro",
            "Idle",
            [self.info_family, self.info_version, self.info_firmware, self.info_servo],
        )

        # Status indicators
        self.slewing_light = LightMember("SLEWING", "Slewing", "Idle")
        self.tracking_light = LightMember("TRACKING", "Tracking", "Idle")
        self.parked_light = LightMember("PARKED", "Parked", "Idle")
        self.mount_status_vector = LightVector(
            "MOUNT_STATUS",
            "Mount Status",
            "Main",
            "Idle",
            [self.slewing_light, self.tracking_light, self.parked_light],
        )

        # Equatorial coordinates
        self.ra = NumberMember("RA", "Right Ascension (h)", "%08.5f", "0", "24", "0", "0")
        self.dec = NumberMember("DEC", "Declination (deg)", "%08.4f", "-90", "90", "0", "0")
        self.equatorial_vector = NumberVector(
            "EQUATORIAL_EOD_COORD",
            "Equatorial JNow",
            "Main",
            "rw",
            "Idle",
            [self.ra, self.dec],
        )

        # Coordination Set Mode (Slew, Track, Sync)
        self.set_slew = SwitchMember("SLEW", "Slew", "Off")
        self.set_track = SwitchMember("TRACK", "Track", "On")
        self.set_sync = SwitchMember("SYNC", "Sync", "Off")
        self.coord_set_vector = SwitchVector(
            "TELESCOPE_ON_COORD_SET",
            "Coord Set Mode",
            "Main",
            "rw",
            "OneOfMany",
            "Idle",
            [self.set_slew, self.set_track, self.set_sync],
        )

        self.abort_motion = SwitchMember("ABORT", "Abort", "Off")
        self.abort_motion_vector = SwitchVector(
            "TELESCOPE_ABORT_MOTION",
            "Abort Motion",
            "Main",
            "rw",
            "AtMostOne",
            "Idle",
            [self.abort_motion],
        )

        # Parking
        self.park_switch = SwitchMember("PARK", "Park", "Off")
        self.unpark_switch = SwitchMember("UNPARK", "Unpark", "On")
        self.park_vector = SwitchVector(
            "TELESCOPE_PARK",
            "Parking",
            "Main",
            "rw",
            "OneOfMany",
            "Idle",
            [self.park_switch, self.unpark_switch],
        )

        park_az = mnt_cfg.get("park_az")
        park_alt = mnt_cfg.get("park_alt")
        self.park_az = NumberMember(
            "PARK_AZ", "Azimuth (deg)", "%07.3f", "0", "360", "0", str(park_az or 0)
        )
        self.park_alt = NumberMember(
            "PARK_ALT", "Altitude (deg)", "%07.3f", "-90", "90", "0", str(park_alt or 0)
        )
        self.park_position_vector = NumberVector(
            "TELESCOPE_PARK_POSITION",
            "Park Position",
            "Site",
            "rw",
            "Idle",
            [self.park_az, self.park_alt],
        )

        self.park_current = SwitchMember("PARK_CURRENT", "Current", "Off")
        self.park_default = SwitchMember("PARK_DEFAULT", "Default", "Off")
        self.park_write = SwitchMember("PARK_WRITE_DATA", "Write Data", "Off")
        self.park_option_vector = SwitchVector(
            "TELESCOPE_PARK_OPTION",
            "Park Options",
            "Site",
            "rw",
            "AtMostOne",
            "Idle",
            [self.park_current, self.park_default, self.park_write],
        )

        # Tracking
        self.track_on = SwitchMember("TRACK_ON", "On", "Off")
        self.track_off = SwitchMember("TRACK_OFF", "Off", "On")
        self.track_state_vector = SwitchVector(
            "TELESCOPE_TRACK_STATE",
            "Tracking",
            "Main",
            "rw",
            "OneOfMany",
            "Idle",
            [self.track_on, self.track_off],
        )

        self.track_sidereal = SwitchMember("TRACK_SIDEREAL", "Sidereal", "On")
        self.track_solar = SwitchMember("TRACK_SOLAR", "Solar", "Off")
        self.track_lunar = SwitchMember("TRACK_LUNAR", "Lunar", "Off")
        self.track_custom = SwitchMember("TRACK_CUSTOM", "Custom", "Off")
        self.track_mode_vector = SwitchVector(
            "TELESCOPE_TRACK_MODE",
            "Tracking Mode",
            "Main",
            "rw",
            "OneOfMany",
            "Idle",
            [self.track_sidereal, self.track_solar, self.track_lunar, self.track_custom],
        )

        self.track_rate_ra = NumberMember(
            "TRACK_RATE_RA", "RA (arcsec/s)", "%.6f", "-16000", "16000", "0", str(SIDEREAL_RATE)
        )
        self.track_rate_de = NumberMember(
            "TRACK_RATE_DE", "DE (arcsec/s)", "%.6f", "-16000", "16000", "0", "0"
        )
        self.track_rate_vector = NumberVector(
            "TELESCOPE_TRACK_RATE",
            "Track Rates",
            "Main",
            "rw",
            "Idle",
            [self.track_rate_ra, self.track_rate_de],
        )

        # Motion control
        self.motion_n = SwitchMember("MOTION_NORTH", "North", "Off")
        self.motion_s = SwitchMember("MOTION_SOUTH", "South", "Off")
        self.motion_ns_vector = SwitchVector(
            "TELESCOPE_MOTION_NS",
            "Motion N/S",
            "Motion Control",
            "rw",
            "AtMostOne",
            "Idle",
            [self.motion_n, self.motion_s],
        )

        self.motion_w = SwitchMember("MOTION_WEST", "West", "Off")
        self.motion_e = SwitchMember("MOTION_EAST", "East", "Off")
        self.motion_we_vector = SwitchVector(
            "TELESCOPE_MOTION_WE",
            "Motion W/E",
            "Motion Control",
            "rw",
            "AtMostOne",
            "Idle",
            [self.motion_w, self.motion_e],
        )

        jog_rate = int(mnt_cfg["jog_rate"])
        self.slew_rate_members = [
            SwitchMember(
                f"SLEW_{i}",
                f"{ap}x AP / {pmc}x PMC",
                "On" if i == jog_rate else "Off",
            )
            for i, (ap, pmc) in enumerate(zip(AP_JOG_RATES, PMC_JOG_RATES))
        ]
        self.slew_rate_vector = SwitchVector(
            "TELESCOPE_SLEW_RATE",
            "Slew Rate",
            "Motion Control",
            "rw",
            "OneOfMany",
            "Idle",
            self.slew_rate_members,
        )

        # Guiding
        self.guide_n = NumberMember("TIMED_GUIDE_N", "North (ms)", "%.0f", "0", "60000", "1", "0")
        self.guide_s = NumberMember("TIMED_GUIDE_S", "South (ms)", "%.0f", "0", "60000", "1", "0")
        self.timed_guide_ns_vector = NumberVector(
            "TELESCOPE_TIMED_GUIDE_NS",
            "Guide N/S",
            "Guide",
            "rw",
            "Idle",
            [self.guide_n, self.guide_s],
        )
        self.guide_w = NumberMember("TIMED_GUIDE_W", "West (ms)", "%.0f", "0", "60000", "1", "0")
        self.guide_e = NumberMember("TIMED_GUIDE_E", "East (ms)", "%.0f", "0", "60000", "1", "0")
        self.timed_guide_we_vector = NumberVector(
            "TELESCOPE_TIMED_GUIDE_WE",
            "Guide W/E",
            "Guide",
            "rw",
            "Idle",
            [self.guide_w, self.guide_e],
        )

        # Geographical location
        self.lat = NumberMember(
            "LAT", "Latitude (deg)", " %06.2f", "-90", "90", "0", str(obs_cfg["latitude"])
        )
        self.long = NumberMember(
            "LONG", "Longitude (deg)", " %06.2f", "0", "360", "0", str(obs_cfg["longitude"] % 360)
        )
        self.elev = NumberMember(
            "ELEV", "Elevation (m)", " %04.0f", "-1000", "10000", "0", str(obs_cfg["elevation"])
        )
        self.location_vector = NumberVector(
            "GEOGRAPHIC_COORD",
            "Location",
            "Site",
            "rw",
            "Idle",
            [self.lat, self.long, self.elev],
        )

        self.utc_time = TextMember("UTC", "UTC Time", "")
        self.utc_offset = TextMember("OFFSET", "UTC Offset", "0")
        self.time_vector = TextVector(
            "TIME_UTC", "UTC", "Site", "rw", "Idle", [self.utc_time, self.utc_offset]
        )

        # Readouts
        self.pier_east = SwitchMember("PIER_EAST", "East (pointing west)", "Off")
        self.pier_west = SwitchMember("PIER_WEST", "West (pointing east)", "Off")
        self.pier_side_vector = SwitchVector(
            "TELESCOPE_PIER_SIDE",
            "Pier Side",
            "Main",
            "ro",
            "AtMostOne",
            "Idle",
            [self.pier_east, self.pier_west],
        )

        self.az = NumberMember("AZ", "Azimuth (deg)", "%08.4f", "0", "360", "0", "0")
        self.alt = NumberMember("ALT", "Altitude (deg)", "%08.4f", "-90", "90", "0", "0")
        self.horizontal_vector = NumberVector(
            "HORIZONTAL_COORD", "Horizontal", "Main", "ro", "Idle", [self.az, self.alt]
        )

        self.ha = NumberMember("HA", "Hour Angle (h)", "%08.5f", "-12", "12", "0", "0")
        self.ha_dec = NumberMember("DEC", "Declination (deg)", "%08.4f", "-90", "90", "0", "0")
        self.hour_angle_vector = NumberVector(
            "HOURANGLE_COORD", "Hour Angle", "Main", "ro", "Idle", [self.ha, self.ha_dec]
        )

        # Mount options
        self.pec_on = SwitchMember("PEC_ON", "On", "Off")
        self.pec_off = SwitchMember("PEC_OFF", "Off", "On")
        self.pec_vector = SwitchVector(
            "TELESCOPE_PEC",
            "PEC",
            "Options",
            "rw",
            "OneOfMany",
            "Idle",
            [self.pec_on, self.pec_off],
        )

        goto_rate = int(mnt_cfg["goto_rate"])
        self.goto_rate_members = [
            SwitchMember(f"GOTO_{rate}", f"{rate}x", "On" if i == goto_rate else "Off")
            for i, rate in enumerate(AP_GOTO_RATES)
        ]
        self.goto_rate_vector = SwitchVector(
            "GOTO_RATE",
            "GOTO Rate",
            "Options",
            "rw",
            "OneOfMany",
            "Idle",
            self.goto_rate_members,
        )

        guide_rate = int(mnt_cfg["guide_rate"])
        self.guide_rate_members = [
            SwitchMember(
                f"GUIDE_{str(rate).replace('.', '_')}",
                f"{rate}x",
                "On" if i == guide_rate else "Off",
            )
            for i, rate in enumerate(GUIDE_RATES)
        ]
        self.guide_rate_vector = SwitchVector(
            "GUIDE_RATE",
            "Guide Rate",
            "Options",
            "rw",
            "OneOfMany",
            "Idle",
            self.guide_rate_members,
        )

        mode = str(mnt_cfg["sync_mode"]).lower()
        self.sync_regular = SwitchMember("SYNC_REGULAR", "Regular (:CM#)", "On" if mode == "regular" else "Off")
        self.sync_cmr = SwitchMember("SYNC_CMR", "CMR (:CMR#)", "On" if mode == "cmr" else "Off")
        self.sync_mode_vector = SwitchVector(
            "SYNC_MODE",
            "Sync Mode",
            "Options",
            "rw",
            "OneOfMany",
            "Idle",
            [self.sync_regular, self.sync_cmr],
        )

        self.swap_ns = SwitchMember("SWAP_NS", "Swap N/S", "Off")
        self.swap_ew = SwitchMember("SWAP_EW", "Swap E/W", "Off")
        self.swap_vector = SwitchVector(
            "SWAP",
            "Swap Buttons",
            "Options",
            "rw",
            "AtMostOne",
            "Idle",
            [self.swap_ns, self.swap_ew],
        )

    # --- helpers ---

    @property
    def connected(self) -> bool:
        return self.mount is not None and self.mount.state != MountState.DISCONNECTED

    async def _call(self, vector, coro) -> bool:
        """Awaits a driver call, answering the client with Alert on failure."""
        try:
            await coro
        except MountError as e:
            logger.error("%s failed: %s", vector.name, e)
            await vector.send_setVector(state="Alert")
            return False
        return True

    async def _require_connection(self, vector) -> bool:
        if not self.connected:
            logger.warning("%s ignored, mount not connected", vector.name)
            await vector.send_setVector(state="Alert")
            return False
        return True

    def _selected_family(self) -> Optional[Family]:
        if self.family_ap.membervalue == "On":
            return Family.AP
        if self.family_pmc.membervalue == "On":
            return Family.PMC
        return None

    def _save(self) -> None:
        try:
            save_config(self.config, self.config_path)
        except OSError as e:
            logger.error("Cannot save configuration: %s", e)

    # --- event dispatch ---

    async def rxevent(self, event: Any) -> None:
        """Main event handler for INDI property updates."""
        if event.vectorname == "CONNECTION":
            await self.handle_connection(event)
        elif event.vectorname == "DEVICE_PORT":
            self.port_vector.update(event)
            await self.port_vector.send_setVector(state="Ok")
        elif event.vectorname == "MOUNT_FAMILY":
            self.family_vector.update(event)
            await self.family_vector.send_setVector(state="Ok")
        elif event.vectorname == "EQUATORIAL_EOD_COORD":
            await self.handle_equatorial_goto(event)
        elif event.vectorname == "TELESCOPE_ON_COORD_SET":
            self.coord_set_vector.update(event)
            await self.coord_set_vector.send_setVector(state="Ok")
        elif event.vectorname == "TELESCOPE_ABORT_MOTION":
            await self.handle_abort_motion(event)
        elif event.vectorname == "TELESCOPE_PARK":
            await self.handle_park(event)
        elif event.vectorname == "TELESCOPE_PARK_POSITION":
            await self.handle_park_position(event)
        elif event.vectorname == "TELESCOPE_PARK_OPTION":
            await self.handle_park_option(event)
        elif event.vectorname == "TELESCOPE_TRACK_STATE":
            await self.handle_track_state(event)
        elif event.vectorname == "TELESCOPE_TRACK_MODE":
            await self.handle_track_mode(event)
        elif event.vectorname == "TELESCOPE_TRACK_RATE":
            await self.handle_track_rate(event)
        elif event.vectorname == "TELESCOPE_MOTION_NS":
            await self.handle_motion_ns(event)
        elif event.vectorname == "TELESCOPE_MOTION_WE":
            await self.handle_motion_we(event)
        elif event.vectorname == "TELESCOPE_SLEW_RATE":
            await self.handle_slew_rate(event)
        elif event.vectorname == "TELESCOPE_TIMED_GUIDE_NS":
            await self.handle_timed_guide(event, self.timed_guide_ns_vector)
        elif event.vectorname == "TELESCOPE_TIMED_GUIDE_WE":
            await self.handle_timed_guide(event, self.timed_guide_we_vector)
        elif event.vectorname == "GEOGRAPHIC_COORD":
            await self.handle_location(event)
        elif event.vectorname == "TIME_UTC":
            await self.handle_time(event)
        elif event.vectorname == "TELESCOPE_PEC":
            await self.handle_pec(event)
        elif event.vectorname == "GOTO_RATE":
            await self.handle_goto_rate(event)
        elif event.vectorname == "GUIDE_RATE":
            await self.handle_guide_rate(event)
        elif event.vectorname == "SYNC_MODE":
            await self.handle_sync_mode(event)
        elif event.vectorname == "SWAP":
            await self.handle_swap(event)

    # --- connection ---

    async def handle_connection(self, event: Any) -> None:
        """Handles CONNECT/DISCONNECT switches."""
        if event:
            self.connection_vector.update(event)
        if self.conn_connect.membervalue == "On":
            if await self.connect_mount():
                await self.connection_vector.send_setVector(state="Ok")
            else:
                self.conn_connect.membervalue = "Off"
                self.conn_disconnect.membervalue = "On"
                await self.connection_vector.send_setVector(state="Alert")
        else:
            if self.mount:
                await self.mount.disconnect()
            await self.connection_vector.send_setVector(state="Idle")

    async def connect_mount(self) -> bool:
        """Connects, identifies the controller and programs site and time."""
        transport = self.transport_factory(
            self.port_name.membervalue,
            int(self.baud_rate.membervalue),
            float(self.config["driver"]["timeout"]),
        )
        status_cfg = self.config["status"]
        self.mount = MountDriver(
            transport,
            family=self._selected_family(),
            slew=slew_config(self.config),
            sync_mode=sync_mode(self.config),
            park_position=park_position(self.config),
            stasis_samples=int(status_cfg["stasis_samples"]),
            ap_epsilon=float(status_cfg["ap_epsilon"]),
            pmc_epsilon_counts=float(status_cfg["pmc_epsilon_counts"]),
            clock=self.clock,
        )
        try:
            caps = await self.mount.connect()
        except MountError as e:
            logger.error("Connection failed: %s", e)
            return False

        self.info_family.membervalue = caps.family.name
        self.info_version.membervalue = caps.version
        self.info_firmware.membervalue = caps.firmware
        self.info_servo.membervalue = caps.servo.value
        await self.info_vector.send_setVector(state="Ok")

        try:
            await self.write_location_to_mount()
            await self.write_time_to_mount(self.clock())
        except MountError as e:
            logger.error("Mount setup failed: %s", e)
            await self.mount.disconnect()
            return False
        await self.publish_state()
        return True

    # --- site ---

    async def write_location_to_mount(self) -> None:
        await self.mount.update_location(
            float(self.lat.membervalue),
            float(self.long.membervalue),
            float(self.elev.membervalue),
        )
        if self.mount.park_position is not None:
            self.park_az.membervalue = self.mount.park_position.az
            self.park_alt.membervalue = self.mount.park_position.alt

    async def write_time_to_mount(self, utc: datetime) -> None:
        offset = float(self.utc_offset.membervalue or 0)
        await self.mount.update_time(utc, offset)
        self.utc_time.membervalue = utc.strftime("%Y-%m-%dT%H:%M:%S")

    async def handle_location(self, event: Any) -> None:
        """Sets the geographic location in the mount."""
        if event is not None:
            self.location_vector.update(event)
        if not self.connected:
            await self.location_vector.send_setVector(state="Ok")
            return
        await self.location_vector.send_setVector(state="Busy")
        if await self._call(self.location_vector, self.write_location_to_mount()):
            await self.location_vector.send_setVector(state="Ok")
            await self.publish_state()

    async def handle_time(self, event: Any) -> None:
        """Programs the mount clock from an ISO 8601 UTC timestamp."""
        if event is not None:
            self.time_vector.update(event)
        try:
            utc = datetime.fromisoformat(self.utc_time.membervalue.rstrip("Z"))
        except ValueError:
            logger.error("Bad UTC time %r", self.utc_time.membervalue)
            await self.time_vector.send_setVector(state="Alert")
            return
        if utc.tzinfo is None:
            utc = utc.replace(tzinfo=timezone.utc)
        if not self.connected:
            await self.time_vector.send_setVector(state="Ok")
            return
        if await self._call(self.time_vector, self.write_time_to_mount(utc)):
            await self.time_vector.send_setVector(state="Ok")
            await self.publish_state()

    # --- motion ---

    async def handle_equatorial_goto(self, event: Any) -> None:
        """Handles GoTo or Sync command using RA/Dec coordinates."""
        if event is not None:
            self.equatorial_vector.update(event)
        if not await self._require_connection(self.equatorial_vector):
            return
        target_ra = float(self.ra.membervalue)
        target_dec = float(self.dec.membervalue)

        if self.set_sync.membervalue == "On":
            if await self._call(self.equatorial_vector, self.mount.sync(target_ra, target_dec)):
                await self.equatorial_vector.send_setVector(state="Ok")
            return

        if self.set_track.membervalue == "On" and not self.mount.tracking:
            if not await self._call(self.equatorial_vector, self.mount.set_tracking(True)):
                return
        if await self._call(self.equatorial_vector, self.mount.goto(target_ra, target_dec)):
            await self.equatorial_vector.send_setVector(state="Busy")
            await self.publish_state()

    async def handle_abort_motion(self, event: Any) -> None:
        """Immediately stops all mount movement."""
        if event is not None:
            self.abort_motion_vector.update(event)
        if self.abort_motion.membervalue == "On":
            if self.connected and await self._call(self.abort_motion_vector, self.mount.abort()):
                for member in (self.motion_n, self.motion_s, self.motion_w, self.motion_e):
                    member.membervalue = "Off"
                await self.motion_ns_vector.send_setVector(state="Idle")
                await self.motion_we_vector.send_setVector(state="Idle")
                await self.abort_motion_vector.send_setVector(state="Ok")
                await self.publish_state()
            self.abort_motion.membervalue = "Off"
            await self.abort_motion_vector.send_setVector()

    async def _handle_motion(self, vector, forward, backward, directions) -> None:
        if not await self._require_connection(vector):
            return
        if forward.membervalue == "On":
            ok = await self._call(vector, self.mount.jog(directions[0]))
        elif backward.membervalue == "On":
            ok = await self._call(vector, self.mount.jog(directions[1]))
        else:
            ok = True
            for direction in directions:
                ok = await self._call(vector, self.mount.stop_jog(direction)) and ok
        if ok:
            busy = "On" in (forward.membervalue, backward.membervalue)
            await vector.send_setVector(state="Busy" if busy else "Ok")

    async def handle_motion_ns(self, event: Any) -> None:
        """Handles manual North/South slew commands."""
        if event is not None:
            self.motion_ns_vector.update(event)
        await self._handle_motion(
            self.motion_ns_vector, self.motion_n, self.motion_s, (Direction.NORTH, Direction.SOUTH)
        )

    async def handle_motion_we(self, event: Any) -> None:
        """Handles manual West/East slew commands."""
        if event is not None:
            self.motion_we_vector.update(event)
        await self._handle_motion(
            self.motion_we_vector, self.motion_w, self.motion_e, (Direction.WEST, Direction.EAST)
        )

    async def handle_slew_rate(self, event: Any) -> None:
        """Selects the jog speed used by the motion buttons."""
        if event is not None:
            self.slew_rate_vector.update(event)
        index = next(
            i for i, m in enumerate(self.slew_rate_members) if m.membervalue == "On"
        )
        self.config["mount"]["jog_rate"] = index
        if self.mount is not None:
            if not await self._call(self.slew_rate_vector, self.mount.set_jog_rate(index)):
                return
        self._save()
        await self.slew_rate_vector.send_setVector(state="Ok")

    async def handle_timed_guide(self, event: Any, vector) -> None:
        """Issues one guide pulse per non-zero member, then clears it."""
        if event is not None:
            vector.update(event)
        if not await self._require_connection(vector):
            return
        directions = {
            "TIMED_GUIDE_N": Direction.NORTH,
            "TIMED_GUIDE_S": Direction.SOUTH,
            "TIMED_GUIDE_W": Direction.WEST,
            "TIMED_GUIDE_E": Direction.EAST,
        }
        await vector.send_setVector(state="Busy")
        ok = True
        members = (
            (self.guide_n, self.guide_s)
            if vector is self.timed_guide_ns_vector
            else (self.guide_w, self.guide_e)
        )
        for member in members:
            duration = int(float(member.membervalue))
            if duration > 0:
                ok = await self._call(vector, self.mount.pulse_guide(directions[member.name], duration)) and ok
            member.membervalue = 0
        if ok:
            await vector.send_setVector(state="Ok")

    # --- parking ---

    async def handle_park(self, event: Any) -> None:
        """Starts a park slew or unparks the mount."""
        if event is not None:
            self.park_vector.update(event)
        if not await self._require_connection(self.park_vector):
            return
        if self.park_switch.membervalue == "On":
            if self.mount.state == MountState.PARKED:
                await self.park_vector.send_setVector(state="Ok")
            elif await self._call(self.park_vector, self.mount.park()):
                await self.park_vector.send_setVector(state="Busy")
        elif self.mount.state == MountState.PARKED:
            if await self._call(self.park_vector, self.mount.unpark()):
                await self.park_vector.send_setVector(state="Ok")
        else:
            await self.park_vector.send_setVector(state="Ok")
        await self.publish_state()

    async def handle_park_position(self, event: Any) -> None:
        if event is not None:
            self.park_position_vector.update(event)
        position = HorizontalCoord(float(self.park_az.membervalue), float(self.park_alt.membervalue))
        if self.mount is not None:
            self.mount.park_position = position
        self.config["mount"]["park_az"] = position.az
        self.config["mount"]["park_alt"] = position.alt
        await self.park_position_vector.send_setVector(state="Ok")

    async def handle_park_option(self, event: Any) -> None:
        """Current / default park position, or persist the park data."""
        if event is not None:
            self.park_option_vector.update(event)
        ok = True
        if self.park_current.membervalue == "On":
            ok = await self._require_connection(self.park_option_vector) and await self._call(
                self.park_option_vector, self.mount.set_current_park()
            )
        elif self.park_default.membervalue == "On":
            ok = await self._require_connection(self.park_option_vector) and await self._call(
                self.park_option_vector, self.mount.set_default_park()
            )
        elif self.park_write.membervalue == "On":
            self._save()
        if ok and self.mount is not None and self.mount.park_position is not None:
            self.park_az.membervalue = self.mount.park_position.az
            self.park_alt.membervalue = self.mount.park_position.alt
            self.config["mount"]["park_az"] = self.mount.park_position.az
            self.config["mount"]["park_alt"] = self.mount.park_position.alt
            await self.park_position_vector.send_setVector(state="Ok")
        for member in (self.park_current, self.park_default, self.park_write):
            member.membervalue = "Off"
        if ok:
            await self.park_option_vector.send_setVector(state="Ok")

    # --- tracking ---

    async def handle_track_state(self, event: Any) -> None:
        """Starts or stops tracking."""
        if event is not None:
            self.track_state_vector.update(event)
        if not await self._require_connection(self.track_state_vector):
            return
        enabled = self.track_on.membervalue == "On"
        if await self._call(self.track_state_vector, self.mount.set_tracking(enabled)):
            await self.track_state_vector.send_setVector(state="Ok")
            await self.publish_state()

    async def handle_track_mode(self, event: Any) -> None:
        if event is not None:
            self.track_mode_vector.update(event)
        mode = next(
            TRACK_MODE_MEMBERS[m.name]
            for m in (self.track_sidereal, self.track_solar, self.track_lunar, self.track_custom)
            if m.membervalue == "On"
        )
        if self.mount is None:
            await self.track_mode_vector.send_setVector(state="Ok")
            return
        if await self._call(self.track_mode_vector, self.mount.set_track_mode(mode)):
            await self.track_mode_vector.send_setVector(state="Ok")

    async def handle_track_rate(self, event: Any) -> None:
        if event is not None:
            self.track_rate_vector.update(event)
        if not await self._require_connection(self.track_rate_vector):
            return
        coro = self.mount.set_track_rate(
            float(self.track_rate_ra.membervalue), float(self.track_rate_de.membervalue)
        )
        if await self._call(self.track_rate_vector, coro):
            await self.track_rate_vector.send_setVector(state="Ok")

    # --- options ---

    async def handle_pec(self, event: Any) -> None:
        if event is not None:
            self.pec_vector.update(event)
        if not await self._require_connection(self.pec_vector):
            return
        if await self._call(self.pec_vector, self.mount.set_pec(self.pec_on.membervalue == "On")):
            await self.pec_vector.send_setVector(state="Ok")

    async def handle_goto_rate(self, event: Any) -> None:
        if event is not None:
            self.goto_rate_vector.update(event)
        index = next(i for i, m in enumerate(self.goto_rate_members) if m.membervalue == "On")
        self.config["mount"]["goto_rate"] = index
        if self.connected:
            if not await self._call(self.goto_rate_vector, self.mount.set_slew_rate(index)):
                return
        self._save()
        await self.goto_rate_vector.send_setVector(state="Ok")

    async def handle_guide_rate(self, event: Any) -> None:
        if event is not None:
            self.guide_rate_vector.update(event)
        index = next(i for i, m in enumerate(self.guide_rate_members) if m.membervalue == "On")
        self.config["mount"]["guide_rate"] = index
        if self.connected:
            if not await self._call(self.guide_rate_vector, self.mount.set_guide_rate(index)):
                return
        self._save()
        await self.guide_rate_vector.send_setVector(state="Ok")

    async def handle_sync_mode(self, event: Any) -> None:
        if event is not None:
            self.sync_mode_vector.update(event)
        mode = SyncMode.CMR if self.sync_cmr.membervalue == "On" else SyncMode.REGULAR
        if self.mount is not None:
            try:
                self.mount.set_sync_mode(mode)
            except MountError as e:
                logger.error("SYNC_MODE failed: %s", e)
                self.sync_cmr.membervalue = "Off"
                self.sync_regular.membervalue = "On"
                await self.sync_mode_vector.send_setVector(state="Alert")
                return
        self.config["mount"]["sync_mode"] = mode.value
        self._save()
        await self.sync_mode_vector.send_setVector(state="Ok")

    async def handle_swap(self, event: Any) -> None:
        if event is not None:
            self.swap_vector.update(event)
        if not await self._require_connection(self.swap_vector):
            return
        ok = True
        if self.swap_ns.membervalue == "On":
            ok = await self._call(self.swap_vector, self.mount.swap_buttons("NS"))
        elif self.swap_ew.membervalue == "On":
            ok = await self._call(self.swap_vector, self.mount.swap_buttons("EW"))
        self.swap_ns.membervalue = "Off"
        self.swap_ew.membervalue = "Off"
        if ok:
            await self.swap_vector.send_setVector(state="Ok")

    # --- status ---

    async def publish_state(self) -> None:
        """Mirrors the driver state into the lights and switches."""
        state = self.mount.state
        self.slewing_light.membervalue = "Busy" if state in BUSY_STATES else "Idle"
        self.tracking_light.membervalue = "Ok" if self.mount.tracking else "Idle"
        self.parked_light.membervalue = "Ok" if state == MountState.PARKED else "Idle"
        await self.mount_status_vector.send_setVector()

        self.track_on.membervalue = "On" if self.mount.tracking else "Off"
        self.track_off.membervalue = "Off" if self.mount.tracking else "On"
        await self.track_state_vector.send_setVector()

        parked = state == MountState.PARKED
        self.park_switch.membervalue = "On" if parked or state == MountState.PARKING else "Off"
        self.unpark_switch.membervalue = "Off" if parked or state == MountState.PARKING else "On"
        await self.park_vector.send_setVector(state="Busy" if state == MountState.PARKING else "Ok")

    async def poll_status(self) -> None:
        """One ReadStatus tick published to the client."""
        previous = self.mount.state
        try:
            status = await self.mount.read_status()
        except MountError as e:
            logger.warning("Status poll failed: %s", e)
            await self.equatorial_vector.send_setVector(state="Alert")
            return

        self.ra.membervalue = status.ra
        self.dec.membervalue = status.dec
        await self.equatorial_vector.send_setVector(
            state="Busy" if status.state in BUSY_STATES else "Ok"
        )

        self.ha.membervalue = status.hour_angle
        self.ha_dec.membervalue = status.dec
        await self.hour_angle_vector.send_setVector(state="Ok")

        if status.horizontal is not None:
            self.az.membervalue = status.horizontal.az
            self.alt.membervalue = status.horizontal.alt
            await self.horizontal_vector.send_setVector(state="Ok")

        self.pier_east.membervalue = "On" if status.pier_side == PierSide.EAST else "Off"
        self.pier_west.membervalue = "On" if status.pier_side == PierSide.WEST else "Off"
        await self.pier_side_vector.send_setVector(state="Ok")

        if status.state != previous:
            await self.publish_state()

    async def hardware(self) -> None:
        """Periodically poll hardware status."""
        while not self.stop:
            await asyncio.sleep(self.poll_interval)
            if self.connected:
                await self.poll_status()


def main() -> None:
    """Entry point for the INDI driver."""
    parser = argparse.ArgumentParser(description="AP / PMC-Eight INDI Driver")
    parser.add_argument("-p", "--port", type=int, default=7624, help="INDI port")
    parser.add_argument("-n", "--name", default="GEM Mount", help="Device name")
    parser.add_argument("-c", "--config", default=None, help="Configuration file")
    parser.add_argument(
        "-s", "--server", action="store_true", help="Start as standalone INDI server"
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable debug logging to stderr")
    args = parser.parse_args()

    # stdout carries the INDI XML stream
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    driver = GemMountDriver(driver_name=args.name, config_path=args.config)

    if args.server:
        if not HAS_SERVER:
            logger.error("indipyserver not installed. Run: pip install indipyserver")
            return
        server = IPyServer(driver, port=args.port)
        asyncio.run(server.asyncrun())
    else:
        asyncio.run(driver.asyncrun())


if __name__ == "__main__":
    main()
