import abc

from vendor_pipeline.models.results import GeocodeResult


class GeocoderInterface(abc.ABC):
    """Interface for resolving a free-text address to coordinates."""

    # "primary" providers are rate shaped by the caller, "fallback" ones are
    # throttled to one request per second by the batch geocoder
    FAMILY = "primary"

    @abc.abstractmethod
    async def geocode(self, address: str) -> GeocodeResult:
        """
        Geocodes a single address.

        Implementations must not raise: network and parse errors are returned
        as GeocodeResult(success=False, error=...).
        """
        pass

    async def close(self):
        """Releases any pooled connections. Optional."""
        pass
