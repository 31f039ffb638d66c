import logging
import os
from typing import Dict, Optional

from vendor_pipeline.core.plugin_factory import PluginFactory
from vendor_pipeline.interfaces.geocoder_interface import GeocoderInterface
from vendor_pipeline.models.results import GeocodeResult

logger = logging.getLogger(__name__)

LIBRARY_DEFAULT_PROVIDER = "google"


class GeocodingClient:
    """
    Resolves addresses through whichever provider is selected for a call.

    Provider resolution: explicit argument, then PRIMARY_GEOCODER_PROVIDER,
    then the configured default, then "google". Geocoders are created lazily,
    one per provider, and reused for the rest of the run.
    """

    def __init__(
        self,
        factory: PluginFactory,
        default_provider: Optional[str] = None,
        geocoders: Optional[Dict[str, GeocoderInterface]] = None,
    ):
        self.factory = factory
        self.default_provider = default_provider
        self._geocoders: Dict[str, GeocoderInterface] = {
            name.lower(): geocoder for name, geocoder in (geocoders or {}).items()
        }

    def _selected_provider(self, provider: Optional[str] = None) -> str:
        selected = (
            provider
            or os.environ.get("PRIMARY_GEOCODER_PROVIDER")
            or self.default_provider
            or LIBRARY_DEFAULT_PROVIDER
        )
        return selected.strip()

    def resolve_provider(self, provider: Optional[str] = None) -> str:
        return self._selected_provider(provider).lower()

    def get_geocoder(self, provider: Optional[str] = None) -> Optional[GeocoderInterface]:
        # Cached by lowercase name; the factory gets the name as written so
        # custom classes can be imported by class name
        selected = self._selected_provider(provider)
        name = selected.lower()
        if name not in self._geocoders:
            geocoder = self.factory.create_geocoder(selected)
            if geocoder is None:
                return None
            self._geocoders[name] = geocoder
        return self._geocoders[name]

    def is_fallback(self, provider: Optional[str] = None) -> bool:
        geocoder = self.get_geocoder(provider)
        return geocoder is not None and geocoder.FAMILY == "fallback"

    async def geocode(self, address: str, provider: Optional[str] = None) -> GeocodeResult:
        """Never raises; every attempt resolves to a GeocodeResult."""
        name = self.resolve_provider(provider)
        geocoder = self.get_geocoder(provider)
        if geocoder is None:
            return GeocodeResult.failure(f"Geocoding provider '{name}' is not available")

        try:
            return await geocoder.geocode(address)
        except Exception as e:
            logger.error(
                f"Unexpected error geocoding '{address}' with {name}: {e}", exc_info=True
            )
            return GeocodeResult.failure(str(e) or "Geocoding failed")

    async def close(self):
        for name, geocoder in self._geocoders.items():
            try:
                await geocoder.close()
            except Exception as e:
                logger.warning(f"Error closing geocoder {name}: {e}")
