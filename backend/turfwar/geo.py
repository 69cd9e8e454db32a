"""Geographic coordinates and distances on the earth's surface."""

import math
from dataclasses import dataclass

from turfwar.errors import InvalidAmountError

EARTH_RADIUS_M = 6371000.0


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def distance_to(self, other: 'Coordinate') -> float:
        """Great-circle distance in metres (haversine)."""
        lat1 = math.radians(self.latitude)
        lat2 = math.radians(other.latitude)
        d_lat = lat2 - lat1
        d_lng = math.radians(other.longitude - self.longitude)
        a = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
        return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))

    def is_in_range(self, other: 'Coordinate', range_m: float) -> bool:
        if other is None:
            return False
        return self.distance_to(other) <= range_m

    def to_dict(self):
        return {'latitude': self.latitude, 'longitude': self.longitude}

    @classmethod
    def from_dict(cls, data) -> 'Coordinate':
        try:
            latitude = float(data['latitude'])
            longitude = float(data['longitude'])
        except (KeyError, TypeError, ValueError):
            raise InvalidAmountError('Invalid location')
        if not (-90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0):
            raise InvalidAmountError('Invalid location')
        return cls(latitude, longitude)
