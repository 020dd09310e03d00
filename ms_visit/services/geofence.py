"""
Validador de geofence - fórmula de Haversine
"""
import math
from dataclasses import dataclass
from typing import Tuple

EARTH_RADIUS_METERS = 6371000

Coordinate = Tuple[float, float]


@dataclass(frozen=True)
class GeofenceResult:
    distance_meters: float
    ok: bool


def haversine_distance(a: Coordinate, b: Coordinate) -> float:
    """
    Distancia de círculo máximo entre dos puntos (lat, lon) en grados

    Returns:
        float: Distancia en metros
    """
    lat1, lon1 = float(a[0]), float(a[1])
    lat2, lon2 = float(b[0]), float(b[1])

    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    h = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) *
         math.sin(delta_lon / 2) ** 2)

    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_METERS * c


def within_radius(a: Coordinate, b: Coordinate, radius_meters: float) -> GeofenceResult:
    """Compara dos coordenadas contra un radio de tolerancia"""
    distance = haversine_distance(a, b)
    return GeofenceResult(distance_meters=distance, ok=distance <= radius_meters)
