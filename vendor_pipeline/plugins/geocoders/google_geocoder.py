import logging
from typing import List, Dict, Any

from vendor_pipeline.plugins.geocoders.primary_geocoder import (
    GeocoderError,
    PrimaryGeocoder,
)

logger = logging.getLogger(__name__)


class GoogleGeocoder(PrimaryGeocoder):
    """Google Maps Geocoding API. Needs PRIMARY_GEOCODER_API_KEY."""

    provider_name = "google"
    base_url = "https://maps.googleapis.com/maps/api/geocode/json"
    requires_api_key = True
    default_request_interval = 0.1

    def _build_params(self, address: str) -> Dict[str, Any]:
        params = {"address": address, "key": self.api_key}
        if self.config.get("region"):
            params["region"] = self.config["region"]
        return params

    def _parse_candidates(self, data: Any) -> List[Dict[str, Any]]:
        status = data.get("status")
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            message = data.get("error_message") or status
            raise GeocoderError(f"Google geocoder error: {message}")

        candidates = []
        for result in data.get("results", []):
            location = result["geometry"]["location"]
            candidates.append(
                {
                    "latitude": location["lat"],
                    "longitude": location["lng"],
                    "formattedAddress": result.get("formatted_address"),
                }
            )
        return candidates
