import asyncio
import logging
import os
import re
from typing import Dict, Any, Optional

import httpx

from vendor_pipeline.interfaces.geocoder_interface import GeocoderInterface
from vendor_pipeline.models.results import GeocodeResult
from vendor_pipeline.models.vendor import Coordinates

logger = logging.getLogger(__name__)

DEFAULT_API_HOST = "forward-reverse-geocoding.p.rapidapi.com"
COUNTRY_SUFFIX_RE = re.compile(r", UNITED STATES$", re.IGNORECASE)


class RapidApiGeocoder(GeocoderInterface):
    """
    Fallback geocoder backed by the RapidAPI forward/reverse geocoding search.

    Uses separate credentials (BACKUP_GEOCODER_API_KEY / _HOST) and a much
    tighter rate limit than the primary providers, which the batch geocoder
    honours by running it one request at a time.

    Config options:
    - api_key / api_host: override the environment credentials
    - timeout (int): Request timeout in seconds (default: 30)
    - max_retries (int): Retry attempts for transient network errors (default: 3)
    - retry_delay (float): Base delay between retries in seconds (default: 1.0)
    - retry_backoff (float): Multiplier for exponential backoff (default: 2.0)
    """

    FAMILY = "fallback"
    provider_name = "rapidapi"

    def __init__(
        self,
        api_key: Optional[str] = None,
        config: Dict[str, Any] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or {}
        self.api_key = (
            api_key
            or self.config.get("api_key")
            or os.environ.get("BACKUP_GEOCODER_API_KEY")
        )
        self.api_host = (
            self.config.get("api_host")
            or os.environ.get("BACKUP_GEOCODER_API_HOST")
            or DEFAULT_API_HOST
        )
        self.timeout = self.config.get("timeout", 30)
        self.max_retries = self.config.get("max_retries", 3)
        self.retry_delay = self.config.get("retry_delay", 1.0)
        self.retry_backoff = self.config.get("retry_backoff", 2.0)
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        client_kwargs = {
            "headers": {
                "X-RapidAPI-Key": self.api_key,
                "X-RapidAPI-Host": self.api_host,
            },
            "timeout": self.timeout,
        }
        if self.transport is not None:
            client_kwargs["transport"] = self.transport
        return httpx.AsyncClient(**client_kwargs)

    async def _search(self, query: str) -> Any:
        url = f"https://{self.api_host}/v1/search"
        params = {"q": query, "format": "json", "addressdetails": "1", "limit": "1"}

        retry_count = 0
        while True:
            try:
                async with self._client() as client:
                    response = await client.get(url, params=params)
                    response.raise_for_status()
                    return response.json()
            except httpx.RequestError as e:
                retry_count += 1
                if retry_count > self.max_retries:
                    logger.error(
                        f"RapidAPI request error for '{query}': {e.__class__.__name__} - {e}. "
                        f"Max retries ({self.max_retries}) exceeded."
                    )
                    raise
                delay = self.retry_delay * (self.retry_backoff ** (retry_count - 1))
                logger.warning(
                    f"Transient error geocoding '{query}': {e.__class__.__name__} - {e}. "
                    f"Retrying ({retry_count}/{self.max_retries}) after {delay:.2f}s delay..."
                )
                await asyncio.sleep(delay)

    async def geocode(self, address: str) -> GeocodeResult:
        if not self.api_key or not self.api_host:
            return GeocodeResult.failure("RapidAPI key or host not configured")

        query = COUNTRY_SUFFIX_RE.sub("", address or "")
        logger.debug(f"Geocoding address via RapidAPI: {query}")

        try:
            data = await self._search(query)
        except httpx.HTTPStatusError as e:
            # Status errors (quota, auth) are not retried
            logger.error(
                f"RapidAPI HTTP status error for '{query}': Status {e.response.status_code}"
            )
            return GeocodeResult.failure(
                f"RapidAPI returned HTTP {e.response.status_code}"
            )
        except httpx.RequestError as e:
            return GeocodeResult.failure(str(e) or e.__class__.__name__)
        except ValueError as e:
            logger.error(f"Could not decode RapidAPI response for '{query}': {e}")
            return GeocodeResult.failure("Invalid response format")

        if not isinstance(data, list) or not data:
            logger.info(f"No results found for address: {query}")
            return GeocodeResult.failure("No results found")

        result = data[0]
        if not isinstance(result, dict) or "lat" not in result or "lon" not in result:
            logger.warning(f"Invalid result structure from RapidAPI: {result}")
            return GeocodeResult.failure("Invalid response format")

        try:
            coordinates = Coordinates(
                latitude=float(result["lat"]), longitude=float(result["lon"])
            )
        except (TypeError, ValueError):
            return GeocodeResult.failure("Invalid response format")

        return GeocodeResult(
            success=True,
            coordinates=coordinates,
            formattedAddress=result.get("display_name") or query,
        )
