import logging
import os
from typing import Dict, Any, Optional

import yaml  # PyYAML
from pydantic import BaseModel, ConfigDict, Field

from vendor_pipeline.core.coordinate_validator import ALASKA_BOUNDS, BoundingRegion

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "configs/config.yaml"


def load_config(path: str) -> dict:
    """Loads YAML configuration file and processes environment variables."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
            if config is None:
                logger.error(f"Configuration file {path} is empty or invalid.")
                return {}
            return process_env_vars(config)
    except FileNotFoundError:
        logger.error(f"Configuration file not found at {path}")
        return {}
    except yaml.YAMLError as e:
        logger.error(f"Error parsing YAML configuration file {path}: {e}")
        return {}


def process_env_vars(item):
    """Recursively replace ${ENV_VAR} and ${ENV_VAR:default} with environment values."""
    if isinstance(item, dict):
        return {k: process_env_vars(v) for k, v in item.items()}
    elif isinstance(item, list):
        return [process_env_vars(i) for i in item]
    elif isinstance(item, str) and item.startswith("${") and item.endswith("}"):
        env_var = item[2:-1]
        if ":" in env_var:
            env_var, default = env_var.split(":", 1)
            return os.environ.get(env_var, default)
        value = os.environ.get(env_var)
        if value is None:
            logger.warning(f"Environment variable {env_var} is not set")
        return value
    return item


class BoundsConfig(BaseModel):
    name: str = ALASKA_BOUNDS.name
    min_lat: float = ALASKA_BOUNDS.min_lat
    max_lat: float = ALASKA_BOUNDS.max_lat
    min_lng: float = ALASKA_BOUNDS.min_lng
    max_lng: float = ALASKA_BOUNDS.max_lng

    def to_region(self) -> BoundingRegion:
        return BoundingRegion(
            name=self.name,
            min_lat=self.min_lat,
            max_lat=self.max_lat,
            min_lng=self.min_lng,
            max_lng=self.max_lng,
        )


class PipelineOptions(BaseModel):
    """Everything a run needs besides its collaborators. Defaults favour safety."""

    model_config = ConfigDict(extra="ignore")

    # geocoding
    provider: Optional[str] = None
    concurrency: int = Field(default=2, ge=1)
    delay_ms: int = Field(default=200, ge=0)
    force_geocode: bool = False

    # stage toggles
    priority_only: bool = True
    archive_non_priority: bool = True
    delete_non_priority: bool = True
    clean_addresses: bool = True
    canonicalize_addresses: bool = False
    validate_coordinates: bool = True
    save_categorized: bool = False

    # persistence
    skip_sync: bool = True
    merge: bool = True
    delete_after_archive: bool = False
    delete_after_sync: bool = False
    batch_size: int = Field(default=500, ge=1, le=500)
    active_collection: str = "vendors"
    priority_collection: str = "priority_vendors"
    other_collection: str = "other_vendors"
    regions_collection: str = "regions"

    # locations
    archive_dir: str = "data/archive"
    failures_dir: str = "data/failures"
    output_file: Optional[str] = None

    bounds: BoundsConfig = Field(default_factory=BoundsConfig)


def build_options(config: Dict[str, Any], overrides: Optional[Dict[str, Any]] = None) -> PipelineOptions:
    """
    Flattens the geocoding, pipeline and storage sections into PipelineOptions.
    ``overrides`` (usually command-line values) win; None values are ignored.
    """
    config = config or {}
    geocoding = config.get("geocoding", {}) or {}
    pipeline = config.get("pipeline", {}) or {}
    storage = config.get("storage", {}) or {}
    collections = storage.get("collections", {}) or {}

    values: Dict[str, Any] = {
        "provider": geocoding.get("default_provider") or None,
        "concurrency": geocoding.get("concurrency"),
        "delay_ms": geocoding.get("delay_ms"),
        "batch_size": storage.get("batch_size"),
        "active_collection": collections.get("active"),
        "priority_collection": collections.get("priority"),
        "other_collection": collections.get("other"),
        "regions_collection": collections.get("regions"),
        **pipeline,
    }
    values.update({key: value for key, value in (overrides or {}).items() if value is not None})
    return PipelineOptions.model_validate(
        {key: value for key, value in values.items() if value is not None}
    )
