import unittest

from gem_mount.coordinates import (
    AXIS_SCALE,
    COUNTS_MAX,
    COUNTS_MIN,
    decode_counts,
    destination_pier_side,
    encode_counts,
    hour_angle,
    is_uninitialized,
    motor_to_radec,
    mount_az_from_public,
    normalize_hour_angle,
    normalize_ra,
    pier_side_from_counts,
    public_az_from_mount,
    radec_to_motor,
)
from gem_mount.errors import OutOfRange
from gem_mount.model import MotorCounts, PierSide

ARCSEC_HOURS = 1.0 / (15.0 * 3600.0)
ARCSEC_DEG = 1.0 / 3600.0


class TestCountsCodec(unittest.TestCase):
    """24-bit two's complement motor count fields."""

    def test_known_values(self):
        self.assertEqual(encode_counts(0), "000000")
        self.assertEqual(encode_counts(-1), "FFFFFF")
        self.assertEqual(encode_counts(-576000), "F73600")
        self.assertEqual(encode_counts(COUNTS_MAX), "7FFFFF")
        self.assertEqual(encode_counts(COUNTS_MIN), "800000")
        self.assertEqual(decode_counts("F73600"), -576000)
        self.assertEqual(decode_counts("7FFFFF"), COUNTS_MAX)
        self.assertEqual(decode_counts("800000"), COUNTS_MIN)

    def test_extremes_and_sign_boundary_survive(self):
        for value in (COUNTS_MIN, COUNTS_MIN + 1, -1, 0, 1, AXIS_SCALE // 4, COUNTS_MAX):
            with self.subTest(value=value):
                self.assertEqual(decode_counts(encode_counts(value)), value)

    def test_overflow_rejected(self):
        with self.assertRaises(OutOfRange):
            encode_counts(COUNTS_MAX + 1)
        with self.assertRaises(OutOfRange):
            encode_counts(COUNTS_MIN - 1)


class TestHourAngleAndPier(unittest.TestCase):
    def test_normalisation(self):
        self.assertAlmostEqual(normalize_ra(-1.0), 23.0)
        self.assertAlmostEqual(normalize_ra(25.5), 1.5)
        self.assertEqual(normalize_ra(-1e-18), 0.0)
        self.assertAlmostEqual(normalize_hour_angle(13.0), -11.0)
        self.assertAlmostEqual(normalize_hour_angle(-12.0), 12.0)
        self.assertAlmostEqual(hour_angle(4.0, 10.0), 6.0)

    def test_meridian_resolves_east(self):
        """
        Description:
            An object exactly on the meridian has hour angle 0.

        Expected Results:
            - The destination pier side is EAST.
        """
        self.assertEqual(destination_pier_side(7.25, 7.25), PierSide.EAST)

    def test_pier_side_from_hour_angle(self):
        self.assertEqual(destination_pier_side(4.0, 10.0), PierSide.EAST)
        self.assertEqual(destination_pier_side(12.0, 10.0), PierSide.WEST)
        for ra in (0.0, 3.3, 11.99, 18.0, 23.9):
            self.assertIn(destination_pier_side(ra, 5.0), (PierSide.EAST, PierSide.WEST))


class TestMotorConversion(unittest.TestCase):
    def test_pmc_goto_example(self):
        """
        Description:
            Target RA 4h, Dec +45 with LST 10h.

        Methodology:
            Hour angle 6h selects the EAST pier; the RA motor angle is then 0
            and the Dec motor angle -45 degrees.

        Expected Results:
            - ra_counts = 0, dec_counts = -576000 (F73600 on the wire).
        """
        pier = destination_pier_side(4.0, 10.0)
        counts = radec_to_motor(4.0, 45.0, pier, 10.0)
        self.assertEqual(counts, MotorCounts(0, -576000))
        self.assertEqual(encode_counts(counts.dec_counts), "F73600")
        self.assertEqual(pier_side_from_counts(counts), PierSide.EAST)

    def test_round_trip_within_one_arcsecond(self):
        """
        Description:
            motor_to_radec inverts radec_to_motor on both pier sides.

        Methodology:
            Converts a grid of targets at several sidereal times and converts
            the counts back.

        Expected Results:
            - RA and Dec come back within one arc-second.
        """
        for lst in (0.0, 5.5, 13.25, 23.9):
            for ra in (0.0, 2.7, 11.95, 17.4, 23.99):
                for dec in (-89.5, -30.0, 0.0, 45.0, 89.5):
                    for pier in (PierSide.EAST, PierSide.WEST):
                        counts = radec_to_motor(ra, dec, pier, lst)
                        back = motor_to_radec(counts, lst)
                        dra = (back.ra - ra + 12.0) % 24.0 - 12.0
                        with self.subTest(lst=lst, ra=ra, dec=dec, pier=pier):
                            self.assertLess(abs(dra), ARCSEC_HOURS)
                            self.assertLess(abs(back.dec - dec), ARCSEC_DEG)

    def test_invalid_declination(self):
        with self.assertRaises(OutOfRange):
            radec_to_motor(1.0, 91.0, PierSide.EAST, 0.0)
        with self.assertRaises(OutOfRange):
            radec_to_motor(1.0, 10.0, PierSide.UNKNOWN, 0.0)


class TestMisc(unittest.TestCase):
    def test_azimuth_origins(self):
        self.assertAlmostEqual(public_az_from_mount(0.0), 180.0)
        self.assertAlmostEqual(public_az_from_mount(270.0), 90.0)
        self.assertAlmostEqual(mount_az_from_public(public_az_from_mount(123.4)), 123.4)

    def test_uninitialised_detection(self):
        self.assertTrue(is_uninitialized(0.0, 90.0))
        self.assertTrue(is_uninitialized(0.0, 0.0))
        self.assertFalse(is_uninitialized(0.0, 45.0))
        self.assertFalse(is_uninitialized(3.2, 90.0))
        self.assertFalse(is_uninitialized(0.001, 0.0))
