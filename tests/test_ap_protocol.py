import unittest
from datetime import datetime, timezone

from helpers import ScriptedTransport

from gem_mount.ap_protocol import BACKLASH_FRAME, APProtocol, parse_version
from gem_mount.errors import NotSupported, ProtocolMismatch
from gem_mount.model import (
    Direction,
    EquatorialCoord,
    Family,
    HorizontalCoord,
    ParkStatus,
    PierSide,
    ServoClass,
    Site,
    SyncMode,
    TrackMode,
)


def handshake_script(version=b"VCP4-P01-01#", backlash=b"1", ra=b"12:00:00.0#"):
    return {
        BACKLASH_FRAME: backlash,
        ":V#": version,
        ":GR#": ra,
    }


class TestVersionParsing(unittest.TestCase):
    def test_versions(self):
        self.assertEqual(parse_version("VCP4-P01-01"), ("V", ServoClass.GTOCP4))
        self.assertEqual(parse_version("E"), ("E", ServoClass.GTOCP2))
        self.assertEqual(parse_version("F"), ("F", ServoClass.GTOCP2))
        self.assertEqual(parse_version("G"), ("G", ServoClass.GTOCP3))
        self.assertEqual(parse_version("T1"), ("T", ServoClass.GTOCP3))
        for bad in ("", "A", "XYZ"):
            with self.subTest(version=bad):
                with self.assertRaises(ProtocolMismatch):
                    parse_version(bad)


class TestAPHandshake(unittest.IsolatedAsyncioTestCase):
    async def test_cp4_handshake(self):
        """
        Description:
            Handshake with a GTOCP4 box.

        Methodology:
            The mount answers VCP4-P01-01# to :V# and a long format RA.

        Expected Results:
            - family AP, firmware V, servo GTOCP4, pier side and park status supported.
            - Frames: clear, backlash, version, RA format check; no :U#.
        """
        transport = ScriptedTransport(handshake_script())
        caps = await APProtocol(transport).handshake()
        self.assertEqual(caps.family, Family.AP)
        self.assertGreaterEqual(caps.firmware, "V")
        self.assertEqual(caps.servo, ServoClass.GTOCP4)
        self.assertTrue(caps.supports_pier_side)
        self.assertTrue(caps.supports_park_status)
        self.assertEqual(transport.written, ["#", BACKLASH_FRAME, ":V#", ":GR#"])

    async def test_backlash_retried_once(self):
        transport = ScriptedTransport(handshake_script(backlash=[b"", b"1"]))
        await APProtocol(transport).handshake()
        self.assertEqual(transport.written.count(BACKLASH_FRAME), 2)

    async def test_backlash_fails_after_retry(self):
        transport = ScriptedTransport(handshake_script(backlash=[b"", b""]))
        with self.assertRaises(ProtocolMismatch):
            await APProtocol(transport).handshake()
        self.assertEqual(transport.written.count(BACKLASH_FRAME), 2)
        self.assertNotIn(":V#", transport.written)

    async def test_short_format_switched(self):
        transport = ScriptedTransport(handshake_script(version=b"G#", ra=b"12:00.0#"))
        caps = await APProtocol(transport).handshake()
        self.assertEqual(caps.servo, ServoClass.GTOCP3)
        self.assertFalse(caps.supports_park_status)
        self.assertEqual(transport.written[-1], ":U#")


class TestAPCommands(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.transport = ScriptedTransport(handshake_script())
        self.protocol = APProtocol(self.transport)
        await self.protocol.handshake()
        self.transport.written.clear()

    async def test_goto_frames(self):
        self.transport.responses.update(
            {":Sr 05:30:00.0#": b"1", ":Sd +60*00:00#": b"1", ":MS#": b"0"}
        )
        await self.protocol.goto(EquatorialCoord(5.5, 60.0), 0.0)
        self.assertEqual(self.transport.written, [":Sr 05:30:00.0#", ":Sd +60*00:00#", ":MS#"])
        self.assertEqual(self.protocol.seed_sample(EquatorialCoord(5.5, 60.0)), (5.5, 60.0))

    async def test_slew_refused_below_horizon(self):
        self.transport.responses.update(
            {":Sr 05:30:00.0#": b"1", ":Sd -80*00:00#": b"1", ":MS#": b"1Object below horizon#"}
        )
        with self.assertRaisesRegex(ProtocolMismatch, "below horizon"):
            await self.protocol.goto(EquatorialCoord(5.5, -80.0), 0.0)

    async def test_set_object_not_acknowledged(self):
        self.transport.responses[":Sr 05:30:00.0#"] = b"0"
        with self.assertRaises(ProtocolMismatch) as cm:
            await self.protocol.goto(EquatorialCoord(5.5, 60.0), 0.0)
        self.assertEqual(cm.exception.frame, ":Sr 05:30:00.0#")
        self.assertEqual(cm.exception.response, "0")

    async def test_sync_modes(self):
        self.transport.responses.update(
            {
                ":Sr 01:00:00.0#": b"1",
                ":Sd +10*00:00#": b"1",
                ":CM#": b"Coordinates matched#",
                ":CMR#": b"Coordinates matched#",
            }
        )
        target = EquatorialCoord(1.0, 10.0)
        self.assertEqual(await self.protocol.sync(target, 0.0, SyncMode.REGULAR), "Coordinates matched")
        await self.protocol.sync(target, 0.0, SyncMode.CMR)
        self.assertEqual(self.transport.written[2], ":CM#")
        self.assertEqual(self.transport.written[-1], ":CMR#")

    async def test_track_rate_frames_repeat_exactly(self):
        """
        Description:
            Custom tracking at twice sidereal.

        Methodology:
            Sends SetTrackRate(30.082, 0) twice.

        Expected Results:
            - :RR+1.0000# then :RD+0.0000#, identical both times.
        """
        await self.protocol.set_track_rate(30.082, 0.0)
        first = list(self.transport.written)
        self.transport.written.clear()
        await self.protocol.set_track_rate(30.082, 0.0)
        self.assertEqual(first, [":RR+1.0000#", ":RD+0.0000#"])
        self.assertEqual(self.transport.written, first)

    async def test_track_modes(self):
        for mode in (TrackMode.SIDEREAL, TrackMode.LUNAR, TrackMode.SOLAR, TrackMode.OFF):
            await self.protocol.set_track_mode(mode)
        self.assertEqual(self.transport.written, [":RT0#", ":RT1#", ":RT2#", ":RT9#"])

    async def test_time_and_location(self):
        self.transport.responses.update(
            {
                ":SL 17:30:00#": b"1",
                ":SC 03/20/24#": b"1",
                ":SG 05:00:00#": b"1",
                ":Sg 340*12:27#": b"1",
                ":St +50*10:56#": b"1",
                ":GG#": b"05:00:00#",
            }
        )
        utc = datetime(2024, 3, 20, 22, 30, 0, tzinfo=timezone.utc)
        await self.protocol.set_time(utc, -5.0)
        await self.protocol.set_location(Site(50.1822, 19.7925, 400))
        self.assertEqual(
            self.transport.written,
            [":SL 17:30:00#", ":SC 03/20/24#", ":SG 05:00:00#", ":Sg 340*12:27#", ":St +50*10:56#"],
        )
        self.assertAlmostEqual(await self.protocol.get_utc_offset(), 5.0)

    async def test_initialisation_check(self):
        self.transport.responses.update({":GR#": b"00:00:00.0#", ":GD#": b"+90*00:00#"})
        self.assertFalse(await self.protocol.is_initialized())
        self.transport.responses.update({":GR#": b"03:12:00.0#", ":GD#": b"+90*00:00#"})
        self.assertTrue(await self.protocol.is_initialized())
        await self.protocol.initialize()
        self.assertEqual(self.transport.written[-2:], [":PO#", ":Q#"])

    async def test_park_status(self):
        self.transport.responses[":GOS#"] = b"P#"
        self.assertEqual(await self.protocol.park_status(), ParkStatus.PARKED)
        self.transport.responses[":GOS#"] = b"0#"
        self.assertEqual(await self.protocol.park_status(), ParkStatus.UNPARKED)

    async def test_position_and_pier_side(self):
        self.transport.responses.update(
            {":GR#": b"05:30:00.0#", ":GD#": b"-12*30:00#", ":pS#": b"West#"}
        )
        reading = await self.protocol.read_position(0.0)
        self.assertAlmostEqual(reading.coord.ra, 5.5)
        self.assertAlmostEqual(reading.coord.dec, -12.5)
        self.assertEqual(reading.pier_side, PierSide.WEST)
        self.assertEqual(reading.sample, (5.5, -12.5))

    async def test_stopped_mount_samples_horizontal(self):
        """
        Description:
            A mount with tracking off drifts in RA while standing still.

        Methodology:
            Switches tracking off, then reads the position.

        Expected Results:
            - Az/Alt are queried and used as the stasis sample.
            - No Goto seed is assumed.
        """
        self.transport.responses.update(
            {
                ":GR#": b"05:30:00.0#",
                ":GD#": b"+60*00:00#",
                ":pS#": b"East#",
                ":GZ#": b"012*30:00#",
                ":GA#": b"+45*15:00#",
            }
        )
        await self.protocol.set_track_mode(TrackMode.OFF)
        self.assertFalse(self.protocol.tracking)
        reading = await self.protocol.read_position(0.0)
        self.assertEqual(self.transport.written[-2:], [":GZ#", ":GA#"])
        self.assertAlmostEqual(reading.coord.ra, 5.5)
        self.assertAlmostEqual(reading.sample[0], 12.5)
        self.assertAlmostEqual(reading.sample[1], 45.25)
        self.assertIsNone(self.protocol.seed_sample(EquatorialCoord(5.5, 60.0)))

        await self.protocol.set_track_mode(TrackMode.SIDEREAL)
        self.assertTrue(self.protocol.tracking)

    async def test_park_frames(self):
        self.transport.responses.update(
            {":Sz 000*00:00#": b"1", ":Sa +50*10:56#": b"1", ":MS#": b"0"}
        )
        park = HorizontalCoord(0.0, 50.1822)
        seed = await self.protocol.begin_park(park, EquatorialCoord(0.0, 89.0), 0.0)
        self.assertEqual(seed, (0.0, 50.1822))
        await self.protocol.finish_park()
        self.assertEqual(
            self.transport.written, [":Sz 000*00:00#", ":Sa +50*10:56#", ":MS#", ":KA#"]
        )

    async def test_manual_motion_frames(self):
        await self.protocol.jog(Direction.NORTH, 2)
        await self.protocol.stop_jog(Direction.NORTH)
        await self.protocol.pulse_guide(Direction.WEST, 50, 2)
        await self.protocol.pulse_guide(Direction.EAST, 5000, 2)
        await self.protocol.set_guide_rate(1)
        await self.protocol.set_slew_rate(0)
        self.assertEqual(
            self.transport.written,
            [":RC2#", ":Mn#", ":Qn#", ":Mw050#", ":Me999#", ":RG1#", ":RS0#"],
        )

    async def test_options(self):
        await self.protocol.set_pec(True)
        await self.protocol.set_pec(False)
        await self.protocol.swap_buttons("NS")
        await self.protocol.swap_buttons("EW")
        self.assertEqual(self.transport.written, [":P#", ":p#", ":NS#", ":EW#"])
        with self.assertRaises(NotSupported):
            await self.protocol.swap_buttons("XY")
