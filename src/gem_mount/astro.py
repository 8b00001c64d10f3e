"""
Astronomy helpers built on ephem.

Sidereal time, Julian day and the horizontal/equatorial transforms the
driver needs for parking and for the hour-angle readout.  Horizontal
results use the south-origin, westward-positive azimuth convention; use
``coordinates.public_az_from_mount`` for the north-origin value shown to
clients.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Tuple

import ephem

from .model import Site


def _ephem_date(when: datetime) -> ephem.Date:
    if when.tzinfo is not None:
        when = when.astimezone(timezone.utc).replace(tzinfo=None)
    return ephem.Date(when)


def make_observer(site: Site, when: datetime) -> ephem.Observer:
    """ephem Observer at ``site`` using JNow and no refraction."""
    obs = ephem.Observer()
    obs.lat = math.radians(site.latitude)
    obs.lon = math.radians(site.longitude)
    obs.elevation = site.elevation
    obs.pressure = 0
    obs.date = _ephem_date(when)
    obs.epoch = obs.date
    return obs


def local_sidereal_time(longitude_east: float, when: datetime) -> float:
    """Local apparent sidereal time in hours."""
    obs = ephem.Observer()
    obs.lon = math.radians(longitude_east)
    obs.date = _ephem_date(when)
    return float(obs.sidereal_time()) * 12.0 / math.pi


def julian_day(when: datetime) -> float:
    return ephem.julian_date(_ephem_date(when))


def horizontal_from_equatorial(
    ra: float, dec: float, site: Site, when: datetime
) -> Tuple[float, float]:
    """(az, alt) in degrees with azimuth measured from south towards west."""
    obs = make_observer(site, when)
    body = ephem.FixedBody()
    body._ra = math.radians(ra * 15.0)
    body._dec = math.radians(dec)
    body._epoch = obs.date
    body.compute(obs)
    north_az = math.degrees(float(body.az))
    return (north_az + 180.0) % 360.0, math.degrees(float(body.alt))


def equatorial_from_horizontal(
    az: float, alt: float, site: Site, when: datetime
) -> Tuple[float, float]:
    """Inverse of :func:`horizontal_from_equatorial`; returns (ra hours, dec degrees)."""
    obs = make_observer(site, when)
    north_az = (az + 180.0) % 360.0
    ra, dec = obs.radec_of(math.radians(north_az), math.radians(alt))
    return (math.degrees(float(ra)) / 15.0) % 24.0, math.degrees(float(dec))


def zonedate_from_utc(utc: datetime, offset_seconds: float) -> Tuple[int, int, int, int, int, int]:
    """Local civil (year, month, day, hour, minute, second) for a UTC instant."""
    local = utc + timedelta(seconds=offset_seconds)
    return local.year, local.month, local.day, local.hour, local.minute, local.second
