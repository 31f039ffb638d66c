import asyncio

import pytest

from vendor_pipeline.core.geocoding_client import GeocodingClient
from vendor_pipeline.core.plugin_factory import PluginFactory
from vendor_pipeline.interfaces.geocoder_interface import GeocoderInterface
from vendor_pipeline.models.results import GeocodeResult
from vendor_pipeline.models.vendor import Coordinates

ANCHORAGE = GeocodeResult(
    success=True,
    coordinates=Coordinates(latitude=61.2, longitude=-149.9),
    formattedAddress="123 Main St, Anchorage, AK 99501, United States",
)


class StubGeocoder(GeocoderInterface):
    """Answers from a table keyed by address substring, Anchorage otherwise."""

    def __init__(self, results=None, default=ANCHORAGE, family="primary"):
        self.FAMILY = family
        self.results = results or {}
        self.default = default
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def geocode(self, address):
        self.calls.append(address)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1
        for key, result in self.results.items():
            if key in address:
                if isinstance(result, Exception):
                    raise result
                return result
        return self.default


def make_client(geocoder, provider="stub"):
    return GeocodingClient(
        PluginFactory({}), default_provider=provider, geocoders={provider: geocoder}
    )


@pytest.fixture(autouse=True)
def clean_geocoder_env(monkeypatch):
    for name in (
        "PRIMARY_GEOCODER_PROVIDER",
        "PRIMARY_GEOCODER_API_KEY",
        "BACKUP_GEOCODER_API_KEY",
        "BACKUP_GEOCODER_API_HOST",
        "DATABASE_URL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def stub_geocoder():
    return StubGeocoder()


@pytest.fixture
def no_sleep():
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    fake_sleep.calls = sleeps
    return fake_sleep
