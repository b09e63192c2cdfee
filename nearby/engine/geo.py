import math

from nearby.core.config import GRID_METERS

EARTH_RADIUS_KM = 6371
METERS_PER_DEGREE_LAT = 111_320  # approximate


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in km, rounded to 10 m."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)

    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    return round(2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a)), 2)


def to_grid(lat: float, lng: float, grid_meters: float = GRID_METERS) -> tuple[float, float]:
    """Snap a coordinate to the centre line of a grid_meters cell."""
    lat_units = METERS_PER_DEGREE_LAT / grid_meters
    grid_lat = round(lat * lat_units) / lat_units

    meters_per_degree_lng = METERS_PER_DEGREE_LAT * math.cos(math.radians(lat))
    lng_units = meters_per_degree_lng / grid_meters
    grid_lng = round(lng * lng_units) / lng_units

    return round(grid_lat, 6), round(grid_lng, 6)
