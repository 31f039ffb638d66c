import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Tuple

from vendor_pipeline.core.geocoding_client import GeocodingClient
from vendor_pipeline.models.results import (
    BatchGeocodeResult,
    GeocodeFailure,
    GeocodeStats,
)
from vendor_pipeline.models.vendor import Vendor

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 2
DEFAULT_DELAY_MS = 200
FALLBACK_MIN_DELAY_MS = 1000


class BatchGeocoder:
    """
    Geocodes a vendor collection in sequential batches.

    All calls inside a batch run concurrently; batches are separated by a
    fixed delay. A failed vendor is passed through untouched and reported in
    the errors list, so the output always has the same length and order as
    the input.
    """

    def __init__(
        self,
        client: GeocodingClient,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.client = client
        self._sleep = sleep or asyncio.sleep

    def effective_limits(
        self, concurrency: int, delay_ms: int, provider: Optional[str]
    ) -> Tuple[int, int]:
        if self.client.is_fallback(provider):
            # Fallback provider allows roughly one request per second
            return 1, max(delay_ms, FALLBACK_MIN_DELAY_MS)
        return max(1, concurrency), max(0, delay_ms)

    async def _geocode_one(
        self, vendor: Vendor, provider: Optional[str], force: bool
    ) -> Tuple[Vendor, Optional[GeocodeFailure], bool]:
        """Returns (vendor, failure, skipped)."""
        if vendor.hasValidCoordinates and not force:
            return vendor, None, True

        address = vendor.location.address
        if not address:
            return vendor, GeocodeFailure(vendorId=vendor.id, name=vendor.name, error="Missing address"), False

        result = await self.client.geocode(address, provider)
        if not result.success or result.coordinates is None:
            error = result.error or "Geocoding failed"
            logger.warning(f"Geocoding failed for vendor {vendor.id} ({address}): {error}")
            return vendor, GeocodeFailure(vendorId=vendor.id, name=vendor.name, error=error), False

        location = vendor.location.model_copy(
            update={
                "address": result.formattedAddress or address,
                "originalAddress": address,
                "coordinates": result.coordinates,
            },
            deep=True,
        )
        geocoded = vendor.model_copy(
            update={"location": location, "hasValidCoordinates": True}, deep=True
        )
        logger.debug(
            f"Geocoded vendor {vendor.id}: {result.coordinates.latitude}, {result.coordinates.longitude}"
        )
        return geocoded, None, False

    async def geocode_all(
        self,
        vendors: List[Vendor],
        concurrency: int = DEFAULT_CONCURRENCY,
        delay_ms: int = DEFAULT_DELAY_MS,
        provider: Optional[str] = None,
        force: bool = False,
    ) -> BatchGeocodeResult:
        concurrency, delay_ms = self.effective_limits(concurrency, delay_ms, provider)
        logger.info(
            f"Geocoding {len(vendors)} vendors with provider "
            f"{self.client.resolve_provider(provider)} (concurrency={concurrency}, delay={delay_ms}ms)"
        )

        results: List[Vendor] = []
        errors: List[GeocodeFailure] = []
        skipped = 0

        for start in range(0, len(vendors), concurrency):
            batch = vendors[start : start + concurrency]
            outcomes = await asyncio.gather(
                *(self._geocode_one(vendor, provider, force) for vendor in batch)
            )
            for vendor, failure, was_skipped in outcomes:
                results.append(vendor)
                if failure is not None:
                    errors.append(failure)
                if was_skipped:
                    skipped += 1

            if start + concurrency < len(vendors):
                await self._sleep(delay_ms / 1000)

        stats = GeocodeStats(
            total=len(vendors),
            successful=len(vendors) - len(errors),
            failed=len(errors),
            skipped=skipped,
        )
        logger.info(
            f"Geocoding complete: {stats.successful} successful "
            f"({stats.skipped} already had coordinates), {stats.failed} failed"
        )
        return BatchGeocodeResult(vendors=results, errors=errors, stats=stats)
