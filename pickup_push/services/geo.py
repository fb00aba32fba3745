"""
Great-circle distance and radius parameter checks.
"""

import math
from typing import TYPE_CHECKING

from pickup_push.errors import ValidationError

if TYPE_CHECKING:
    from pickup_push.models.push_subscription import PushSubscription
    from pickup_push.services.subscriptions import SubscriptionStore

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres on a spherical Earth."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    # Rounding can push a slightly above 1 for antipodal points
    a = min(1.0, a)
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def latitude_band(center_lat: float, radius_km: float) -> tuple[float, float]:
    """Latitude range that contains every point within radius_km of center_lat.

    Distance along a meridian is exactly R * d_phi, so no point outside the
    band can be within the radius. Used as a SQL prefilter.
    """
    delta = math.degrees(radius_km / EARTH_RADIUS_KM) + 1e-6
    return max(-90.0, center_lat - delta), min(90.0, center_lat + delta)


def validate_coordinates(latitude: float, longitude: float) -> None:
    """Raise ValidationError unless latitude/longitude are finite and in range."""
    if latitude is None or not isinstance(latitude, (int, float)) or not math.isfinite(latitude):
        raise ValidationError("Latitude must be a finite number", field="latitude")
    if longitude is None or not isinstance(longitude, (int, float)) or not math.isfinite(longitude):
        raise ValidationError("Longitude must be a finite number", field="longitude")
    if not -90.0 <= latitude <= 90.0:
        raise ValidationError("Latitude must be between -90 and 90", field="latitude")
    if not -180.0 <= longitude <= 180.0:
        raise ValidationError("Longitude must be between -180 and 180", field="longitude")


def validate_radius(radius_km: float) -> None:
    if radius_km is None or not isinstance(radius_km, (int, float)) or not math.isfinite(radius_km):
        raise ValidationError("Radius must be a finite number", field="radiusKm")
    if radius_km <= 0:
        raise ValidationError("Radius must be greater than zero", field="radiusKm")


async def select_nearby(
    store: "SubscriptionStore",
    center_lat: float,
    center_lon: float,
    radius_km: float,
    exclude_user_id: str | None = None,
) -> list["PushSubscription"]:
    """Subscriptions within radius_km of the center, minus exclude_user_id's.

    Bad parameters are rejected before the store is touched.
    """
    validate_coordinates(center_lat, center_lon)
    validate_radius(radius_km)
    return await store.query_within_radius(center_lat, center_lon, radius_km, exclude_user_id)
