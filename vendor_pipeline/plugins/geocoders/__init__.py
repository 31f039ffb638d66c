"""
Import all geocoders here to make them available to the plugin registry.

Providers are looked up by the name used in configuration and on the
command line (PRIMARY_GEOCODER_PROVIDER / --provider).
"""

from vendor_pipeline.plugins.geocoders.geoapify_geocoder import GeoapifyGeocoder
from vendor_pipeline.plugins.geocoders.google_geocoder import GoogleGeocoder
from vendor_pipeline.plugins.geocoders.openstreetmap_geocoder import (
    OpenStreetMapGeocoder,
)
from vendor_pipeline.plugins.geocoders.rapidapi_geocoder import RapidApiGeocoder

GEOCODER_REGISTRY = {
    "google": GoogleGeocoder,
    "openstreetmap": OpenStreetMapGeocoder,
    "geoapify": GeoapifyGeocoder,
    "rapidapi": RapidApiGeocoder,
}
