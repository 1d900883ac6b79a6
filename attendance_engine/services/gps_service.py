"""GPS geofence verification."""
import math
from typing import Dict

from attendance_engine.utils.errors import ValidationError
from attendance_engine.utils.helpers import round_half_up

EARTH_RADIUS_METERS = 6371000


class GPSService:
    """Service for GPS and location verification."""

    @staticmethod
    def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Calculate distance between two GPS points in meters."""
        R = EARTH_RADIUS_METERS
        
        lat1_rad = math.radians(lat1)
        lat2_rad = math.radians(lat2)
        delta_lat = math.radians(lat2 - lat1)
        delta_lon = math.radians(lon2 - lon1)
        
        a = (math.sin(delta_lat/2) ** 2 + 
             math.cos(lat1_rad) * math.cos(lat2_rad) * 
             math.sin(delta_lon/2) ** 2)
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1-a))
        
        return R * c

    @staticmethod
    def parse_coordinates(lat, lng, field: str = 'proof') -> tuple:
        """Validate a latitude/longitude pair."""
        if isinstance(lat, bool) or isinstance(lng, bool):
            raise ValidationError(f"{field} latitude and longitude must be numbers")
        try:
            lat = float(lat)
            lng = float(lng)
        except (TypeError, ValueError):
            raise ValidationError(f"{field} latitude and longitude must be numbers")
        if not (math.isfinite(lat) and math.isfinite(lng)):
            raise ValidationError(f"{field} latitude and longitude must be finite")
        if not -90 <= lat <= 90 or not -180 <= lng <= 180:
            raise ValidationError(f"{field} coordinates are out of range")
        return lat, lng

    @staticmethod
    def verify_location(user_lat: float, user_lng: float, session) -> Dict:
        """Check a point against the session geofence. The boundary counts as inside."""
        distance = GPSService.calculate_distance(
            user_lat, user_lng,
            session.center_latitude, session.center_longitude
        )
        
        allowed = session.radius_meters
        if float(allowed).is_integer():
            allowed = int(allowed)
        
        return {
            'is_inside': distance <= session.radius_meters,
            'distance': round_half_up(distance),
            'exact_distance': distance,
            'allowed': allowed
        }
