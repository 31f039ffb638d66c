import argparse
import asyncio
import logging
import os
import sys
from logging.handlers import RotatingFileHandler

from dotenv import load_dotenv
from pydantic import ValidationError

from vendor_pipeline.core.config import DEFAULT_CONFIG_PATH, build_options, load_config
from vendor_pipeline.core.geocoding_client import GeocodingClient
from vendor_pipeline.core.orchestrator import PipelineOrchestrator
from vendor_pipeline.core.persistence import seed_regions
from vendor_pipeline.core.plugin_factory import PluginFactory
from vendor_pipeline.models.region import Region, default_regions

# Load environment variables from .env file
load_dotenv()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DIR = "logs"  # Directory to store log files


def setup_logging(log_level_str: str = "INFO", log_to_file: bool = True):
    """
    Configures logging to both console and file.

    Args:
        log_level_str: Logging level as string (DEBUG, INFO, WARNING, ERROR)
        log_to_file: Whether to also log to a file
    """
    log_level = getattr(logging, log_level_str.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicate logs
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(console_handler)

    if log_to_file:
        if not os.path.exists(LOG_DIR):
            os.makedirs(LOG_DIR)

        # 10 MB max size, keep 5 backup files
        log_file_path = os.path.join(LOG_DIR, "vendor_pipeline.log")
        file_handler = RotatingFileHandler(
            log_file_path, maxBytes=10 * 1024 * 1024, backupCount=5
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(file_handler)

        logging.info(f"Logging to file: {log_file_path}")

    # Suppress verbose logs from libraries
    for noisy in ("httpx", "aiohttp", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Normalize, geocode and categorize vendor listings."
    )
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="YAML config file")
    parser.add_argument("--input", help="Vendor file (.json array or .csv)")
    parser.add_argument("--output", help="Base path for categorized output files")
    parser.add_argument("--provider", help="Geocoding provider (google, openstreetmap, geoapify, rapidapi)")
    parser.add_argument("--concurrency", type=int, help="Geocode requests per batch")
    parser.add_argument("--delay", type=int, help="Delay between batches in ms")
    parser.add_argument("--sync", action="store_true", help="Write categorized vendors to the document store")
    parser.add_argument("--no-priority-only", action="store_true", help="Process vendors outside priority regions too")
    parser.add_argument("--no-clean-addresses", action="store_true")
    parser.add_argument("--no-validate-coordinates", action="store_true")
    parser.add_argument("--save-categorized", action="store_true", help="Write active/priority/other files")
    parser.add_argument("--force-geocode", action="store_true", help="Geocode vendors that already have coordinates")
    parser.add_argument("--keep-input", action="store_true", help="Never delete the input file")
    parser.add_argument(
        "--seed-regions",
        action="store_true",
        help="Write the configured (or built-in) regions into an empty regions collection and exit",
    )
    args = parser.parse_args(argv)
    if not args.input and not args.seed_regions:
        parser.error("--input is required unless --seed-regions is given")
    return args


def cli_overrides(args: argparse.Namespace) -> dict:
    overrides = {
        "provider": args.provider,
        "concurrency": args.concurrency,
        "delay_ms": args.delay,
        "output_file": args.output,
    }
    if args.sync:
        overrides["skip_sync"] = False
    if args.no_priority_only:
        overrides["priority_only"] = False
    if args.no_clean_addresses:
        overrides["clean_addresses"] = False
    if args.no_validate_coordinates:
        overrides["validate_coordinates"] = False
    if args.save_categorized:
        overrides["save_categorized"] = True
    if args.force_geocode:
        overrides["force_geocode"] = True
    if args.keep_input:
        overrides["delete_after_archive"] = False
        overrides["delete_after_sync"] = False
    return overrides


async def seed_region_collection(factory, options, regions) -> int:
    store = factory.create_document_store()
    if store is None:
        logging.error("Cannot seed regions: the document store could not be created")
        return 1
    try:
        written = await seed_regions(
            store, regions or default_regions(), options.regions_collection
        )
    finally:
        await store.close()
    logging.info(f"=== Region seeding finished ({written} written) ===")
    return 0


async def main(argv=None) -> int:
    """Main execution function."""
    args = parse_args(argv)
    config = load_config(args.config)

    global_settings = config.get("global_settings", {}) or {}
    setup_logging(
        global_settings.get("log_level", "INFO"),
        global_settings.get("log_to_file", True),
    )
    if not config:
        logging.warning(f"No configuration loaded from {args.config}, using defaults")

    logging.info("=== Vendor Pipeline Starting ===")

    try:
        options = build_options(config, cli_overrides(args))
        configured_regions = [Region.model_validate(r) for r in config.get("regions", []) or []]
    except ValidationError as e:
        logging.error(f"Invalid configuration or command-line options: {e}")
        return 1
    factory = PluginFactory(config)

    if args.seed_regions:
        return await seed_region_collection(factory, options, configured_regions)

    client = GeocodingClient(factory, default_provider=options.provider)

    store = None
    if not options.skip_sync or (config.get("storage", {}) or {}).get("plugin"):
        store = factory.create_document_store()
        if store is None and not options.skip_sync:
            logging.error("Sync requested but the document store could not be created")
            return 1

    orchestrator = PipelineOrchestrator(
        options, client, store=store, seed_regions=configured_regions or None
    )
    try:
        result = await orchestrator.run(args.input)
    finally:
        await orchestrator.close()

    if result.success:
        logging.info("=== Vendor Pipeline Finished ===")
        return 0
    logging.error(f"=== Vendor Pipeline Failed: {result.error} ===")
    return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
