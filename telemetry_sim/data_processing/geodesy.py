# data_processing/geodesy.py
"""
Spherical-earth helpers for walking a route polyline.
Points are (lon, lat) tuples in degrees, the GeoJSON order the route provider uses.
"""
from pyproj import Geod

EARTH_RADIUS_M = 6371000.0

geod = Geod(a=EARTH_RADIUS_M, b=EARTH_RADIUS_M)


def normalize_longitude(lon):
    return (lon + 180.0) % 360.0 - 180.0


def normalize_azimuth(azimuth):
    heading = (azimuth + 360.0) % 360.0
    return 0.0 if heading >= 360.0 else heading


def inverse(a, b):
    """Initial bearing in [0, 360) and great-circle distance in meters from a to b."""
    azimuth, _, dist = geod.inv(a[0], a[1], b[0], b[1])
    return normalize_azimuth(azimuth), dist


def distance_meters(a, b):
    if a == b:
        return 0.0
    return inverse(a, b)[1]


def bearing(a, b):
    return inverse(a, b)[0]


def destination(origin, distance_km, bearing_deg):
    """Point distance_km from origin along bearing_deg, as (lon, lat) with lon in [-180, 180)."""
    lon, lat, _ = geod.fwd(origin[0], origin[1], bearing_deg, distance_km * 1000.0)
    return normalize_longitude(lon), lat
