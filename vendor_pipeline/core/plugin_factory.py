import re
from typing import Type, Dict, Any, Optional
import importlib
import logging

from vendor_pipeline.interfaces.geocoder_interface import GeocoderInterface
from vendor_pipeline.interfaces.storage_interface import DocumentStoreInterface
from vendor_pipeline.plugins.geocoders import GEOCODER_REGISTRY

logger = logging.getLogger(__name__)


class PluginFactory:
    """Factory class for creating geocoder and document-store plugins"""

    def __init__(self, config: Dict[str, Any]):
        self.config = config or {}
        self._plugin_paths = {
            "geocoder": "vendor_pipeline.plugins.geocoders",
            "storage": "vendor_pipeline.plugins.storage",
        }

    def _import_plugin_class(
        self, plugin_name: str, plugin_type: str
    ) -> Optional[Type]:
        """Import a plugin class based on its name and type"""
        try:
            base_path = self._plugin_paths.get(plugin_type)
            if not base_path:
                raise ValueError(f"Unknown plugin type: {plugin_type}")

            # e.g. JSONDocumentStore -> json_storage
            module_name = self._convert_class_to_module_name(plugin_name)
            full_module_path = f"{base_path}.{module_name}"

            module = importlib.import_module(full_module_path)
            return getattr(module, plugin_name)

        except (ImportError, AttributeError) as e:
            logger.error(f"Failed to import plugin {plugin_name}: {e}")
            return None

    def _convert_class_to_module_name(self, class_name: str) -> str:
        """Convert CamelCase class name to snake_case module name"""
        special_cases = {
            "InMemoryDocumentStore": "memory_storage",
            "JSONDocumentStore": "json_storage",
            "PostgresDocumentStore": "postgres_storage",
            "RapidApiGeocoder": "rapidapi_geocoder",
            "OpenStreetMapGeocoder": "openstreetmap_geocoder",
        }

        if class_name in special_cases:
            return special_cases[class_name]

        return re.sub("([A-Z])", r"_\1", class_name).lower().lstrip("_")

    def provider_config(self, provider: str) -> Dict[str, Any]:
        geocoding = self.config.get("geocoding", {}) or {}
        defaults = {
            key: geocoding[key]
            for key in ("timeout", "max_retries", "retry_delay", "retry_backoff")
            if key in geocoding
        }
        return {**defaults, **(geocoding.get("providers", {}) or {}).get(provider, {})}

    def create_geocoder(self, provider: str) -> Optional[GeocoderInterface]:
        """Create a geocoder for a provider name such as "google" or "rapidapi"."""
        geocoder_class = GEOCODER_REGISTRY.get(provider.lower())
        if geocoder_class is None:
            # Allow a fully named class for custom providers
            geocoder_class = self._import_plugin_class(provider, "geocoder")
        if geocoder_class is None:
            logger.error(f"Unknown geocoding provider: {provider}")
            return None

        try:
            return geocoder_class(config=self.provider_config(provider.lower()))
        except Exception as e:
            logger.error(f"Failed to instantiate geocoder {provider}: {e}")
            return None

    def create_document_store(self) -> Optional[DocumentStoreInterface]:
        """Create the document store named in the storage section"""
        storage_config = self.config.get("storage", {}) or {}
        store_name = storage_config.get("plugin", "JSONDocumentStore")

        store_class = self._import_plugin_class(store_name, "storage")
        if not store_class:
            return None

        try:
            return store_class(config=storage_config.get("options", {}) or {})
        except Exception as e:
            logger.error(f"Failed to instantiate document store {store_name}: {e}")
            return None
