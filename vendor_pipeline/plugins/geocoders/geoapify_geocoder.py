from typing import List, Dict, Any

from vendor_pipeline.plugins.geocoders.primary_geocoder import PrimaryGeocoder


class GeoapifyGeocoder(PrimaryGeocoder):
    """Geoapify text search, 5 requests per second on the free plan."""

    provider_name = "geoapify"
    base_url = "https://api.geoapify.com/v1/geocode/search"
    requires_api_key = True
    default_request_interval = 0.2

    def _build_params(self, address: str) -> Dict[str, Any]:
        return {"text": address, "format": "json", "limit": 1, "apiKey": self.api_key}

    def _parse_candidates(self, data: Any) -> List[Dict[str, Any]]:
        return [
            {
                "latitude": result["lat"],
                "longitude": result["lon"],
                "formattedAddress": result.get("formatted"),
            }
            for result in (data or {}).get("results", [])
        ]
