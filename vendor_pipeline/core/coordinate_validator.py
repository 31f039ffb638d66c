import math
import logging
from typing import List, Optional
from pydantic import BaseModel

from vendor_pipeline.models.vendor import Vendor
from vendor_pipeline.models.results import CoordinateValidation

logger = logging.getLogger(__name__)

NEAR_ZERO_EPSILON = 0.001


class BoundingRegion(BaseModel):
    """
    Lat/lng box a geocoded point must fall inside.

    When ``min_lng`` is greater than ``max_lng`` the box wraps the
    antimeridian and a longitude is inside if it is east of ``min_lng`` OR
    west of ``max_lng``. Otherwise it is a plain range check.
    """

    name: str = "region"
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    @property
    def crosses_antimeridian(self) -> bool:
        return self.min_lng > self.max_lng

    def contains(self, lat: float, lng: float) -> bool:
        if not (self.min_lat <= lat <= self.max_lat):
            return False
        if self.crosses_antimeridian:
            return lng >= self.min_lng or lng <= self.max_lng
        return self.min_lng <= lng <= self.max_lng


# The Aleutians run past 180 degrees, so Alaska wraps the dateline.
ALASKA_BOUNDS = BoundingRegion(
    name="Alaska", min_lat=51.0, max_lat=71.5, min_lng=172.0, max_lng=-130.0
)


def _as_float(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def validate_vendor_coordinates(
    vendor: Vendor, bounds: BoundingRegion = ALASKA_BOUNDS
) -> CoordinateValidation:
    """Check a vendor's coordinates for range, region membership and zero values."""
    coords = vendor.location.coordinates
    lat = _as_float(coords.latitude)
    lng = _as_float(coords.longitude)

    if lat is None or lng is None:
        return CoordinateValidation(valid=False, issues=["Missing or invalid coordinates"])

    issues: List[str] = []
    if lat < -90 or lat > 90:
        issues.append(f"Latitude out of range: {lat}")
    if lng < -180 or lng > 180:
        issues.append(f"Longitude out of range: {lng}")
    if not bounds.contains(lat, lng):
        issues.append(f"Coordinates outside {bounds.name} bounds: {lat}, {lng}")
    if abs(lat) < NEAR_ZERO_EPSILON and abs(lng) < NEAR_ZERO_EPSILON:
        issues.append("Near-zero coordinates (likely geocoding failure)")

    return CoordinateValidation(
        valid=not issues, issues=issues, coordinates={"lat": lat, "lng": lng}
    )
