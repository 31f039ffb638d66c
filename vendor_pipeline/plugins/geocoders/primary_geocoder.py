import abc
import asyncio
import logging
import os
from typing import List, Dict, Any, Optional, Tuple

import aiohttp

from vendor_pipeline.interfaces.geocoder_interface import GeocoderInterface
from vendor_pipeline.models.results import GeocodeResult
from vendor_pipeline.models.vendor import Coordinates

logger = logging.getLogger(__name__)


class GeocoderError(Exception):
    """Raised by a provider when it answers but refuses or fails the request."""


class PrimaryGeocoder(GeocoderInterface):
    """
    Base class for the primary provider family.

    Subclasses describe one HTTP API (endpoint, params, payload parsing); this
    class owns the transport: aiohttp requests, a semaphore bounding in-flight
    calls and a minimum interval between requests.
    """

    FAMILY = "primary"
    provider_name = "primary"
    base_url: str = ""
    requires_api_key = False
    default_request_interval = 0.2

    def __init__(self, api_key: Optional[str] = None, config: Dict[str, Any] = None):
        self.config = config or {}
        self.api_key = (
            api_key
            or self.config.get("api_key")
            or os.environ.get("PRIMARY_GEOCODER_API_KEY")
        )
        self.timeout = self.config.get("timeout", 10)
        self.semaphore = asyncio.Semaphore(self.config.get("max_concurrent", 5))
        self.last_request_time = 0
        self.request_interval = self.config.get(
            "request_interval", self.default_request_interval
        )

    @abc.abstractmethod
    def _build_params(self, address: str) -> Dict[str, Any]:
        pass

    @abc.abstractmethod
    def _parse_candidates(self, data: Any) -> List[Dict[str, Any]]:
        """Turns a provider payload into [{latitude, longitude, formattedAddress}]."""
        pass

    def _build_headers(self) -> Dict[str, str]:
        return {}

    async def _fetch_json(self, params: Dict[str, Any]) -> Tuple[int, Any]:
        """Performs one rate-shaped GET and returns (status, decoded body)."""
        async with self.semaphore:
            current_time = asyncio.get_event_loop().time()
            time_since_last_request = current_time - self.last_request_time
            if time_since_last_request < self.request_interval:
                await asyncio.sleep(self.request_interval - time_since_last_request)

            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(
                timeout=timeout, headers=self._build_headers()
            ) as session:
                async with session.get(self.base_url, params=params) as response:
                    self.last_request_time = asyncio.get_event_loop().time()
                    if response.status != 200:
                        return response.status, None
                    return response.status, await response.json(content_type=None)

    async def geocode_candidates(self, address: str) -> List[Dict[str, Any]]:
        """
        Generic provider call. Raises GeocoderError or aiohttp errors on failure;
        an empty list means the provider found nothing.
        """
        if self.requires_api_key and not self.api_key:
            raise GeocoderError(f"{self.provider_name} geocoder requires an API key")

        status, data = await self._fetch_json(self._build_params(address))
        if status != 200:
            raise GeocoderError(f"{self.provider_name} returned HTTP {status}")
        return self._parse_candidates(data)

    async def geocode(self, address: str) -> GeocodeResult:
        try:
            candidates = await self.geocode_candidates(address)
            if not candidates:
                return GeocodeResult.failure("No results found")

            best = candidates[0]
            return GeocodeResult(
                success=True,
                coordinates=Coordinates(
                    latitude=float(best["latitude"]),
                    longitude=float(best["longitude"]),
                ),
                formattedAddress=best.get("formattedAddress") or address,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"{self.provider_name} request failed for '{address}': {e}")
            return GeocodeResult.failure(str(e) or e.__class__.__name__)
        except GeocoderError as e:
            logger.warning(f"{self.provider_name} could not geocode '{address}': {e}")
            return GeocodeResult.failure(str(e))
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Malformed {self.provider_name} response for '{address}': {e}")
            return GeocodeResult.failure(f"Invalid response format: {e}")
