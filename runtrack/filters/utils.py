"""
Shared geodesy helpers for position filtering, prediction and distance tracking.

Keeps the great-circle distance and the local planar projections in one place so
distance accumulation, dead reckoning and the replay tools agree on the numbers.
"""

import math

EARTH_RADIUS_M = 6371000  # Earth radius in meters


def haversine_distance(lat1, lon1, lat2, lon2):
    """
    Calculate great-circle distance between two coordinates in meters.

    Args:
        lat1, lon1: First coordinate (latitude, longitude in degrees)
        lat2, lon2: Second coordinate (latitude, longitude in degrees)

    Returns:
        float: Distance in meters
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (math.sin(delta_phi / 2) ** 2 +
         math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def initial_bearing(lat1, lon1, lat2, lon2):
    """Initial bearing from the first coordinate to the second, degrees in [0, 360)."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_lambda = math.radians(lon2 - lon1)

    y = math.sin(delta_lambda) * math.cos(phi2)
    x = (math.cos(phi1) * math.sin(phi2) -
         math.sin(phi1) * math.cos(phi2) * math.cos(delta_lambda))
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def offset_position(lat, lon, distance_m, heading_deg):
    """
    Move a coordinate by distance_m along heading_deg (0 = north, 90 = east).

    Small-distance approximation, fine for step-scale projections between fixes.

    Returns:
        tuple: (latitude, longitude) in degrees
    """
    heading_rad = math.radians(heading_deg)
    lat_rad = math.radians(lat)

    new_lat = lat + math.degrees(distance_m * math.cos(heading_rad) / EARTH_RADIUS_M)
    new_lon = lon + math.degrees(distance_m * math.sin(heading_rad) / (EARTH_RADIUS_M * math.cos(lat_rad)))
    return new_lat, new_lon
