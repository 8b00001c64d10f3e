import os
import tempfile
import unittest

from helpers import ELEVATION, LATITUDE, LONGITUDE, FakeClock

from gem_mount.config import load_config
from gem_mount.indi_driver import GemMountDriver
from gem_mount.model import MountState, Site, SyncMode
from gem_mount.simulator import APScope, PMCScope, SimulatedTransport


class TestGemMountDriver(unittest.IsolatedAsyncioTestCase):
    """
    INDI property handling on top of the simulated AP controller.
    """

    async def asyncSetUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.config_path = os.path.join(self.tmpdir.name, "config.yaml")
        self.clock = FakeClock()
        self.scope = APScope(site=Site(LATITUDE, LONGITUDE, ELEVATION), clock=self.clock.now)
        self.transports = []

        def factory(port, baud, timeout):
            transport = SimulatedTransport(self.scope, self.clock.monotonic)
            self.transports.append(transport)
            return transport

        self.driver = GemMountDriver(
            config_path=self.config_path, transport_factory=factory, clock=self.clock.now
        )

        # Mock INDI send to prevent actual network traffic during tests
        async def mock_send(xmldata):
            pass

        self.driver.send = mock_send

    async def asyncTearDown(self):
        if self.driver.mount:
            await self.driver.mount.disconnect()
        self.tmpdir.cleanup()

    @property
    def written(self):
        return self.transports[-1].written

    async def connect(self):
        self.driver.conn_connect.membervalue = "On"
        self.driver.conn_disconnect.membervalue = "Off"
        await self.driver.handle_connection(None)

    async def poll(self, slew_seconds=120.0, polls=3):
        self.clock.advance(slew_seconds)
        for _ in range(polls):
            await self.driver.poll_status()
            self.clock.advance(1.0)

    async def test_connect(self):
        """
        Description:
            CONNECT identifies the controller and programs site and time.

        Methodology:
            Switches CONNECT on with the default configuration (family ap).

        Expected Results:
            - MOUNT_INFO shows an AP GTOCP4 controller.
            - The mount is tracking and the default park position is published.
        """
        await self.connect()
        self.assertTrue(self.driver.connected)
        self.assertEqual(self.driver.info_family.membervalue, "AP")
        self.assertEqual(self.driver.info_servo.membervalue, "GTOCP4")
        self.assertEqual(self.driver.mount.state, MountState.TRACKING)
        self.assertEqual(self.driver.tracking_light.membervalue, "Ok")
        self.assertEqual(self.driver.track_on.membervalue, "On")
        self.assertAlmostEqual(float(self.driver.park_alt.membervalue), LATITUDE, delta=0.001)
        self.assertIn(":PO#", self.written)

    async def test_connect_wrong_family(self):
        self.driver.family_ap.membervalue = "Off"
        self.driver.family_pmc.membervalue = "On"
        await self.connect()
        self.assertFalse(self.driver.connected)
        self.assertEqual(self.driver.conn_connect.membervalue, "Off")
        self.assertEqual(self.driver.connection_vector.state, "Alert")

    async def test_connect_pmc(self):
        self.scope = PMCScope()
        self.driver.family_ap.membervalue = "Off"
        self.driver.family_auto.membervalue = "On"
        await self.connect()
        self.assertEqual(self.driver.info_family.membervalue, "PMC")
        self.assertEqual(self.driver.info_firmware.membervalue, "06B9T9")
        self.assertEqual(self.driver.mount.state, MountState.TRACKING)

    async def test_disconnect(self):
        await self.connect()
        self.driver.conn_connect.membervalue = "Off"
        self.driver.conn_disconnect.membervalue = "On"
        await self.driver.handle_connection(None)
        self.assertFalse(self.driver.connected)

    async def test_goto_and_poll(self):
        await self.connect()
        self.driver.ra.membervalue = "5.5"
        self.driver.dec.membervalue = "60"
        await self.driver.handle_equatorial_goto(None)
        self.assertEqual(self.driver.mount.state, MountState.SLEWING)
        self.assertEqual(self.driver.slewing_light.membervalue, "Busy")
        self.assertEqual(self.driver.equatorial_vector.state, "Busy")

        await self.poll()
        self.assertEqual(self.driver.mount.state, MountState.TRACKING)
        self.assertEqual(self.driver.slewing_light.membervalue, "Idle")
        self.assertEqual(self.driver.equatorial_vector.state, "Ok")
        self.assertAlmostEqual(float(self.driver.ra.membervalue), 5.5, delta=1e-3)
        self.assertAlmostEqual(float(self.driver.dec.membervalue), 60.0, delta=1e-3)
        self.assertIn("On", (self.driver.pier_east.membervalue, self.driver.pier_west.membervalue))

    async def test_goto_with_tracking_off(self):
        await self.connect()
        self.driver.track_on.membervalue = "Off"
        self.driver.track_off.membervalue = "On"
        await self.driver.handle_track_state(None)
        self.assertFalse(self.driver.mount.tracking)

        # TRACK mode switches tracking back on before the slew
        self.driver.ra.membervalue = "5.5"
        self.driver.dec.membervalue = "60"
        await self.driver.handle_equatorial_goto(None)
        self.assertTrue(self.driver.mount.tracking)
        self.assertEqual(self.written[-3:], [":Sr 05:30:00.0#", ":Sd +60*00:00#", ":MS#"])

    async def test_sync(self):
        await self.connect()
        self.driver.set_track.membervalue = "Off"
        self.driver.set_sync.membervalue = "On"
        self.driver.ra.membervalue = "6"
        self.driver.dec.membervalue = "45"
        await self.driver.handle_equatorial_goto(None)
        self.assertEqual(self.driver.equatorial_vector.state, "Ok")
        self.assertEqual(self.written[-1], ":CM#")
        await self.poll(slew_seconds=0.0, polls=1)
        self.assertAlmostEqual(float(self.driver.ra.membervalue), 6.0, delta=1e-3)

    async def test_abort(self):
        await self.connect()
        self.driver.ra.membervalue = "5.5"
        self.driver.dec.membervalue = "60"
        await self.driver.handle_equatorial_goto(None)
        self.driver.abort_motion.membervalue = "On"
        await self.driver.handle_abort_motion(None)
        self.assertEqual(self.driver.mount.state, MountState.IDLE)
        self.assertEqual(self.driver.abort_motion.membervalue, "Off")
        self.assertEqual(self.driver.track_off.membervalue, "On")

    async def test_park_and_unpark(self):
        await self.connect()
        self.driver.park_az.membervalue = "120"
        self.driver.park_alt.membervalue = "30"
        await self.driver.handle_park_position(None)
        self.driver.park_switch.membervalue = "On"
        self.driver.unpark_switch.membervalue = "Off"
        await self.driver.handle_park(None)
        self.assertEqual(self.driver.mount.state, MountState.PARKING)
        self.assertEqual(self.driver.park_vector.state, "Busy")

        await self.poll(polls=4)
        self.assertEqual(self.driver.mount.state, MountState.PARKED)
        self.assertEqual(self.driver.parked_light.membervalue, "Ok")
        self.assertIn(":KA#", self.written)

        self.driver.park_switch.membervalue = "Off"
        self.driver.unpark_switch.membervalue = "On"
        await self.driver.handle_park(None)
        self.assertEqual(self.driver.mount.state, MountState.TRACKING)
        self.assertEqual(self.driver.parked_light.membervalue, "Idle")

    async def test_park_options(self):
        await self.connect()
        self.driver.park_az.membervalue = "120"
        self.driver.park_alt.membervalue = "30"
        await self.driver.handle_park_position(None)
        self.assertEqual(self.driver.mount.park_position.az, 120.0)

        self.driver.park_write.membervalue = "On"
        await self.driver.handle_park_option(None)
        saved = load_config(self.config_path)
        self.assertEqual(saved["mount"]["park_az"], 120.0)
        self.assertEqual(saved["mount"]["park_alt"], 30.0)
        self.assertEqual(self.driver.park_write.membervalue, "Off")

        self.driver.park_default.membervalue = "On"
        await self.driver.handle_park_option(None)
        self.assertAlmostEqual(float(self.driver.park_az.membervalue), 0.0)
        self.assertAlmostEqual(float(self.driver.park_alt.membervalue), LATITUDE, delta=0.001)

    async def test_manual_motion(self):
        await self.connect()
        self.driver.motion_n.membervalue = "On"
        await self.driver.handle_motion_ns(None)
        self.assertIn("n", self.scope.jog)
        self.assertEqual(self.driver.motion_ns_vector.state, "Busy")
        self.driver.motion_n.membervalue = "Off"
        await self.driver.handle_motion_ns(None)
        self.assertNotIn("n", self.scope.jog)
        self.assertEqual(self.driver.motion_ns_vector.state, "Ok")

    async def test_timed_guide(self):
        await self.connect()
        self.driver.guide_w.membervalue = 250
        await self.driver.handle_timed_guide(None, self.driver.timed_guide_we_vector)
        self.assertIn(":Mw250#", self.written)
        self.assertEqual(float(self.driver.guide_w.membervalue), 0.0)
        self.assertEqual(self.driver.timed_guide_we_vector.state, "Ok")

    async def test_rate_options_are_saved(self):
        await self.connect()
        for i, member in enumerate(self.driver.goto_rate_members):
            member.membervalue = "On" if i == 0 else "Off"
        await self.driver.handle_goto_rate(None)
        self.assertEqual(self.written[-1], ":RS0#")

        self.driver.sync_regular.membervalue = "Off"
        self.driver.sync_cmr.membervalue = "On"
        await self.driver.handle_sync_mode(None)
        self.assertEqual(self.driver.mount.sync_mode, SyncMode.CMR)

        saved = load_config(self.config_path)
        self.assertEqual(saved["mount"]["goto_rate"], 0)
        self.assertEqual(saved["mount"]["sync_mode"], "cmr")

    async def test_time_update(self):
        await self.connect()
        self.driver.utc_time.membervalue = "2024-03-20T22:30:00"
        self.driver.utc_offset.membervalue = "0"
        await self.driver.handle_time(None)
        self.assertIn(":SL 22:30:00#", self.written)
        self.assertEqual(self.driver.time_vector.state, "Ok")

    async def test_bad_time_is_alert(self):
        self.driver.utc_time.membervalue = "yesterday"
        await self.driver.handle_time(None)
        self.assertEqual(self.driver.time_vector.state, "Alert")

    async def test_commands_need_connection(self):
        self.driver.ra.membervalue = "5.5"
        self.driver.dec.membervalue = "60"
        await self.driver.handle_equatorial_goto(None)
        self.assertEqual(self.driver.equatorial_vector.state, "Alert")
        await self.driver.handle_park(None)
        self.assertEqual(self.driver.park_vector.state, "Alert")

    async def test_failed_poll_is_alert(self):
        await self.connect()
        await self.driver.mount.disconnect()
        await self.driver.poll_status()
        self.assertEqual(self.driver.equatorial_vector.state, "Alert")
