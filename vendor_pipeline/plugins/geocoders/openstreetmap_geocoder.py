from typing import List, Dict, Any

from vendor_pipeline.plugins.geocoders.primary_geocoder import PrimaryGeocoder


class OpenStreetMapGeocoder(PrimaryGeocoder):
    """
    Nominatim search. No key, but the usage policy asks for an identifying
    User-Agent and caps clients at a couple of requests per second.
    """

    provider_name = "openstreetmap"
    base_url = "https://nominatim.openstreetmap.org/search"
    default_request_interval = 0.5

    def _build_headers(self) -> Dict[str, str]:
        return {"User-Agent": self.config.get("user_agent", "vendor-pipeline/1.0")}

    def _build_params(self, address: str) -> Dict[str, Any]:
        return {"q": address, "format": "json", "addressdetails": 1, "limit": 1}

    def _parse_candidates(self, data: Any) -> List[Dict[str, Any]]:
        return [
            {
                "latitude": float(item["lat"]),
                "longitude": float(item["lon"]),
                "formattedAddress": item.get("display_name"),
            }
            for item in data or []
        ]
