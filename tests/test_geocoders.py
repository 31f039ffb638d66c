import aiohttp
import httpx
import pytest

from vendor_pipeline.plugins.geocoders import GEOCODER_REGISTRY
from vendor_pipeline.plugins.geocoders.geoapify_geocoder import GeoapifyGeocoder
from vendor_pipeline.plugins.geocoders.google_geocoder import GoogleGeocoder
from vendor_pipeline.plugins.geocoders.openstreetmap_geocoder import OpenStreetMapGeocoder
from vendor_pipeline.plugins.geocoders.rapidapi_geocoder import RapidApiGeocoder


class DummyFetch:
    """Stands in for PrimaryGeocoder._fetch_json."""

    def __init__(self, status=200, payload=None, error=None):
        self.status = status
        self.payload = payload
        self.error = error
        self.calls = []

    async def __call__(self, params):
        self.calls.append(params)
        if self.error:
            raise self.error
        return self.status, self.payload


def google_payload(lat, lng, address):
    return {
        "status": "OK",
        "results": [
            {"geometry": {"location": {"lat": lat, "lng": lng}}, "formatted_address": address}
        ],
    }


@pytest.mark.asyncio
async def test_google_success(monkeypatch):
    geocoder = GoogleGeocoder(api_key="key")
    fetch = DummyFetch(payload=google_payload(61.2, -149.9, "123 Main St, Anchorage, AK 99501, USA"))
    monkeypatch.setattr(geocoder, "_fetch_json", fetch)

    result = await geocoder.geocode("123 Main St, Anchorage, AK 99501")
    assert result.success is True
    assert result.coordinates.latitude == 61.2
    assert result.formattedAddress == "123 Main St, Anchorage, AK 99501, USA"
    assert fetch.calls[0]["address"] == "123 Main St, Anchorage, AK 99501"
    assert fetch.calls[0]["key"] == "key"


@pytest.mark.asyncio
async def test_google_zero_results_and_denied(monkeypatch):
    geocoder = GoogleGeocoder(api_key="key")
    monkeypatch.setattr(geocoder, "_fetch_json", DummyFetch(payload={"status": "ZERO_RESULTS", "results": []}))
    result = await geocoder.geocode("nowhere")
    assert result.success is False
    assert result.error == "No results found"

    monkeypatch.setattr(
        geocoder,
        "_fetch_json",
        DummyFetch(payload={"status": "REQUEST_DENIED", "error_message": "bad key"}),
    )
    result = await geocoder.geocode("somewhere")
    assert result.success is False
    assert "bad key" in result.error


@pytest.mark.asyncio
async def test_google_requires_api_key(monkeypatch):
    geocoder = GoogleGeocoder()
    fetch = DummyFetch()
    monkeypatch.setattr(geocoder, "_fetch_json", fetch)
    result = await geocoder.geocode("anything")
    assert result.success is False
    assert "API key" in result.error
    assert fetch.calls == []


@pytest.mark.asyncio
async def test_http_and_network_errors_become_results(monkeypatch):
    geocoder = OpenStreetMapGeocoder()
    monkeypatch.setattr(geocoder, "_fetch_json", DummyFetch(status=503))
    result = await geocoder.geocode("x")
    assert result.success is False
    assert "503" in result.error

    monkeypatch.setattr(
        geocoder, "_fetch_json", DummyFetch(error=aiohttp.ClientConnectionError("connection reset"))
    )
    result = await geocoder.geocode("x")
    assert result.success is False
    assert result.error == "connection reset"


@pytest.mark.asyncio
async def test_openstreetmap_parses_string_coordinates(monkeypatch):
    geocoder = OpenStreetMapGeocoder()
    payload = [{"lat": "64.8378", "lon": "-147.7164", "display_name": "Fairbanks, Alaska"}]
    monkeypatch.setattr(geocoder, "_fetch_json", DummyFetch(payload=payload))
    result = await geocoder.geocode("Fairbanks, AK")
    assert result.coordinates.longitude == -147.7164
    assert geocoder._build_headers()["User-Agent"]


@pytest.mark.asyncio
async def test_geoapify_malformed_payload(monkeypatch):
    geocoder = GeoapifyGeocoder(api_key="key")
    monkeypatch.setattr(geocoder, "_fetch_json", DummyFetch(payload={"results": [{"lat": 1}]}))
    result = await geocoder.geocode("x")
    assert result.success is False
    assert result.error.startswith("Invalid response format")


def test_registry_families():
    assert set(GEOCODER_REGISTRY) == {"google", "openstreetmap", "geoapify", "rapidapi"}
    assert GEOCODER_REGISTRY["rapidapi"].FAMILY == "fallback"
    assert GEOCODER_REGISTRY["google"].FAMILY == "primary"


def rapidapi(handler, **config):
    return RapidApiGeocoder(
        api_key="secret",
        config={"retry_delay": 0, **config},
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_rapidapi_success_strips_country_suffix():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200, json=[{"lat": "61.2", "lon": "-149.9", "display_name": "Main St, Anchorage"}]
        )

    result = await rapidapi(handler).geocode("123 Main St, Anchorage, AK 99501, UNITED STATES")
    assert result.success is True
    assert result.coordinates.latitude == 61.2
    assert result.formattedAddress == "Main St, Anchorage"

    request = seen[0]
    assert request.url.host == "forward-reverse-geocoding.p.rapidapi.com"
    assert request.url.path == "/v1/search"
    assert request.url.params["q"] == "123 Main St, Anchorage, AK 99501"
    assert request.url.params["limit"] == "1"
    assert request.url.params["format"] == "json"
    assert request.headers["X-RapidAPI-Key"] == "secret"


@pytest.mark.asyncio
async def test_rapidapi_soft_failures():
    result = await rapidapi(lambda request: httpx.Response(200, json=[])).geocode("x")
    assert (result.success, result.error) == (False, "No results found")

    result = await rapidapi(lambda request: httpx.Response(200, json=[{"name": "x"}])).geocode("x")
    assert (result.success, result.error) == (False, "Invalid response format")

    result = await rapidapi(lambda request: httpx.Response(200, text="<html>")).geocode("x")
    assert (result.success, result.error) == (False, "Invalid response format")


@pytest.mark.asyncio
async def test_rapidapi_status_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(429, json={"message": "Too many requests"})

    result = await rapidapi(handler).geocode("x")
    assert result.success is False
    assert "429" in result.error
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_rapidapi_network_errors_are_retried():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("unreachable", request=request)

    result = await rapidapi(handler, max_retries=2).geocode("x")
    assert result.success is False
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_rapidapi_without_credentials():
    geocoder = RapidApiGeocoder(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    result = await geocoder.geocode("x")
    assert result.error == "RapidAPI key or host not configured"
