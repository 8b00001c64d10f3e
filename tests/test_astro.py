import unittest
from datetime import datetime, timedelta, timezone

from gem_mount import astro
from gem_mount.model import Site

J2000 = datetime(2000, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestAstro(unittest.TestCase):
    def test_julian_day(self):
        self.assertAlmostEqual(astro.julian_day(J2000), 2451545.0, places=6)
        self.assertAlmostEqual(
            astro.julian_day(J2000 + timedelta(hours=6)) - astro.julian_day(J2000), 0.25, places=6
        )

    def test_naive_and_aware_times_agree(self):
        self.assertAlmostEqual(
            astro.julian_day(J2000.replace(tzinfo=None)), astro.julian_day(J2000), places=9
        )

    def test_greenwich_sidereal_time(self):
        # GMST at J2000.0 is 18h41m50.5s; apparent differs by well under a second
        self.assertAlmostEqual(astro.local_sidereal_time(0.0, J2000), 18.697375, delta=1e-3)
        self.assertAlmostEqual(astro.local_sidereal_time(90.0, J2000), 0.697375, delta=1e-3)

    def test_meridian_azimuth_is_south_origin(self):
        site = Site(50.0, 20.0, 0.0)
        lst = astro.local_sidereal_time(site.longitude, J2000)
        az, alt = astro.horizontal_from_equatorial(lst, 10.0, site, J2000)
        self.assertAlmostEqual((az + 180.0) % 360.0 - 180.0, 0.0, delta=0.01)
        self.assertAlmostEqual(alt, 50.0, delta=0.05)
        _, dec = astro.equatorial_from_horizontal(az, alt, site, J2000)
        self.assertAlmostEqual(dec, 10.0, delta=0.01)

    def test_zonedate(self):
        local = astro.zonedate_from_utc(datetime(2024, 3, 20, 22, 30, 0), -5 * 3600)
        self.assertEqual(local, (2024, 3, 20, 17, 30, 0))
