import json
import logging
import os
from typing import Dict, Any, List, Optional, Tuple

import aiofiles
import pandas as pd

from vendor_pipeline.core.address_cleaner import clean_address
from vendor_pipeline.core.artifacts import ArtifactWriter
from vendor_pipeline.core.batch_geocoder import BatchGeocoder
from vendor_pipeline.core.config import PipelineOptions
from vendor_pipeline.core.coordinate_validator import validate_vendor_coordinates
from vendor_pipeline.core.geocoding_client import GeocodingClient
from vendor_pipeline.core.persistence import fetch_regions, sync_vendors
from vendor_pipeline.core.region_classifier import (
    build_region_info,
    count_by_region,
    is_priority,
)
from vendor_pipeline.core.vendor_normalizer import (
    is_revoked,
    normalize_vendor,
    validate_vendor,
    vendor_from_csv_row,
)
from vendor_pipeline.interfaces.storage_interface import DocumentStoreInterface
from vendor_pipeline.models.region import Region, default_regions
from vendor_pipeline.models.results import CategorizedVendors, RunResult, SyncResult
from vendor_pipeline.models.vendor import Coordinates, Vendor, utc_now_iso

logger = logging.getLogger(__name__)


class InputFileError(Exception):
    """The input file is missing, unparseable or not an array of vendors."""


class PipelineOrchestrator:
    """
    Runs one input file through every stage, in order:

    load -> archive input -> normalize/validate -> revoked filter ->
    priority filter -> address cleaning -> geocoding -> coordinate
    validation -> region enrichment -> categorization -> persistence.

    Each stage returns new collections; records leaving the success path are
    written to side files so every input record ends in exactly one sink.
    """

    def __init__(
        self,
        options: PipelineOptions,
        geocoding_client: GeocodingClient,
        store: Optional[DocumentStoreInterface] = None,
        regions: Optional[List[Region]] = None,
        seed_regions: Optional[List[Region]] = None,
        batch_geocoder: Optional[BatchGeocoder] = None,
    ):
        self.options = options
        self.geocoding_client = geocoding_client
        self.store = store
        self.regions = regions
        self.seed_regions = seed_regions
        self.batch_geocoder = batch_geocoder or BatchGeocoder(geocoding_client)

    # --- Ingestion ---

    async def load_input(self, input_path: str) -> List[Dict[str, Any]]:
        if not os.path.isfile(input_path):
            raise InputFileError(f"Input file not found: {input_path}")

        if input_path.lower().endswith(".csv"):
            try:
                frame = pd.read_csv(input_path, dtype=str, keep_default_na=False)
            except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
                raise InputFileError(f"Could not parse CSV input {input_path}: {e}") from e
            return [vendor_from_csv_row(row) for row in frame.to_dict(orient="records")]

        async with aiofiles.open(input_path, mode="r", encoding="utf-8") as f:
            content = await f.read()
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise InputFileError(f"Input file {input_path} is not valid JSON: {e}") from e
        if not isinstance(data, list):
            raise InputFileError(f"Input file {input_path} must contain a JSON array of vendors")
        return data

    async def load_regions(self) -> List[Region]:
        """Regions are read once per run; seed regions stand in for an empty store."""
        if self.regions is not None:
            return self.regions

        regions: List[Region] = []
        if self.store is not None:
            try:
                regions = await fetch_regions(self.store, self.options.regions_collection)
            except Exception as e:
                logger.warning(f"Could not fetch regions from the document store: {e}")

        if not regions:
            regions = self.seed_regions or default_regions()
            logger.warning(f"No stored regions found, using {len(regions)} seed regions")
        return regions

    # --- Stages ---

    def normalize_stage(
        self, raw_vendors: List[Any]
    ) -> Tuple[List[Vendor], List[Dict[str, Any]]]:
        valid: List[Vendor] = []
        invalid: List[Dict[str, Any]] = []
        seen_ids = set()

        for raw in raw_vendors:
            data = normalize_vendor(raw)
            vendor, errors = validate_vendor(data)
            if vendor is not None and vendor.id in seen_ids:
                vendor, errors = None, [
                    {"loc": "id", "msg": f"Duplicate vendor id {vendor.id}", "type": "duplicate"}
                ]
            if vendor is None:
                logger.warning(f"Invalid vendor {data.get('id')}: {errors}")
                invalid.append({"vendor": data, "errors": errors})
                continue
            seen_ids.add(vendor.id)
            valid.append(vendor)

        logger.info(f"Normalized {len(valid)} vendors ({len(invalid)} invalid)")
        return valid, invalid

    def split_revoked(self, vendors: List[Vendor]) -> Tuple[List[Vendor], List[Vendor]]:
        kept = [vendor for vendor in vendors if not is_revoked(vendor)]
        revoked = [vendor for vendor in vendors if is_revoked(vendor)]
        logger.info(f"Found {len(vendors)} vendors: {len(kept)} kept, {len(revoked)} revoked")
        return kept, revoked

    def split_priority(
        self, vendors: List[Vendor], regions: List[Region]
    ) -> Tuple[List[Vendor], List[Vendor]]:
        priority = [vendor for vendor in vendors if is_priority(vendor, regions)]
        non_priority = [vendor for vendor in vendors if not is_priority(vendor, regions)]
        logger.info(
            f"Priority filter: {len(priority)} priority, {len(non_priority)} non-priority"
        )
        for region_name, count in count_by_region(priority, regions).items():
            logger.info(f"  {region_name}: {count} vendors")
        return priority, non_priority

    def clean_stage(self, vendors: List[Vendor]) -> List[Vendor]:
        cleaned_vendors = []
        cleaned_count = 0

        for vendor in vendors:
            address = vendor.location.address
            if not address:
                cleaned_vendors.append(vendor)
                continue

            result = clean_address(address, canonicalize=self.options.canonicalize_addresses)
            update: Dict[str, Any] = {"zipCode": result.extractedZip or vendor.location.zipCode}
            if result.wasModified:
                cleaned_count += 1
                update.update(address=result.cleaned, originalAddress=address)
                logger.debug(
                    f"Cleaned address for {vendor.id}: '{address}' -> '{result.cleaned}' "
                    f"({', '.join(result.modifications)})"
                )

            location = vendor.location.model_copy(update=update, deep=True)
            cleaned_vendors.append(vendor.model_copy(update={"location": location}, deep=True))

        logger.info(f"Cleaned {cleaned_count} of {len(vendors)} addresses")
        return cleaned_vendors

    def validate_coordinates_stage(
        self, vendors: List[Vendor]
    ) -> Tuple[List[Vendor], List[Dict[str, Any]]]:
        bounds = self.options.bounds.to_region()
        valid: List[Vendor] = []
        invalid: List[Dict[str, Any]] = []

        for vendor in vendors:
            validation = validate_vendor_coordinates(vendor, bounds)
            if validation.valid:
                valid.append(vendor)
            else:
                logger.warning(f"Invalid coordinates for vendor {vendor.id}: {validation.issues}")
                invalid.append({"vendor": vendor.to_document(), "issues": validation.issues})

        logger.info(f"Coordinate validation: {len(valid)} valid, {len(invalid)} invalid")
        return valid, invalid

    def retry_documents(self, vendors: List[Vendor]) -> List[Dict[str, Any]]:
        """Sidelined vendors with coordinates cleared, ready to be fed back in as input."""
        docs = []
        for vendor in vendors:
            location = vendor.location.model_copy(update={"coordinates": Coordinates()}, deep=True)
            docs.append(
                vendor.model_copy(
                    update={"location": location, "hasValidCoordinates": False}, deep=True
                ).to_document()
            )
        return docs

    def enrich_stage(self, vendors: List[Vendor], regions: List[Region]) -> List[Vendor]:
        checked_at = utc_now_iso()
        return [
            vendor.model_copy(
                update={"regionInfo": build_region_info(vendor, regions, checked_at)},
                deep=True,
            )
            for vendor in vendors
        ]

    def categorize(self, vendors: List[Vendor]) -> CategorizedVendors:
        categorized = CategorizedVendors()
        for vendor in vendors:
            info = vendor.regionInfo
            if info is not None and info.isActiveRegion:
                categorized.active.append(vendor)
            elif info is not None and info.isPriorityRegion:
                categorized.priorityOnly.append(vendor)
            else:
                categorized.other.append(vendor)

        logger.info(
            f"Categorization results: {len(categorized.active)} active, "
            f"{len(categorized.priorityOnly)} priority-only, {len(categorized.other)} other"
        )
        return categorized

    async def persist(self, categorized: CategorizedVendors) -> List[SyncResult]:
        targets = [
            (categorized.active, self.options.active_collection),
            (categorized.priorityOnly, self.options.priority_collection),
            (categorized.other, self.options.other_collection),
        ]
        results = []
        for vendors, collection in targets:
            results.append(
                await sync_vendors(
                    self.store,
                    vendors,
                    collection,
                    merge=self.options.merge,
                    batch_size=self.options.batch_size,
                )
            )
        return results

    # --- Run ---

    def _output_path(self, input_path: str) -> str:
        if self.options.output_file:
            return self.options.output_file
        return f"{os.path.splitext(input_path)[0]}.json"

    async def run(self, input_path: str) -> RunResult:
        options = self.options
        stats: Dict[str, Any] = {}
        artifacts: Dict[str, str] = {}
        writer = ArtifactWriter(options.failures_dir, options.archive_dir)
        logger.info(f"=== Processing vendors from {input_path} (run {writer.timestamp}) ===")

        try:
            raw_vendors = await self.load_input(input_path)
            stats["total"] = len(raw_vendors)

            artifacts["input_archive"] = await writer.archive_input(
                input_path, delete_original=options.delete_after_archive
            )

            vendors, invalid = self.normalize_stage(raw_vendors)
            stats["valid"], stats["invalid"] = len(vendors), len(invalid)
            path = await writer.write_failures("invalid_vendors", invalid)
            if path:
                artifacts["invalid_vendors"] = path

            vendors, revoked = self.split_revoked(vendors)
            stats["revoked"] = len(revoked)
            path = await writer.update_revoked_ledger(
                [vendor.to_document() for vendor in revoked], utc_now_iso()
            )
            if path:
                artifacts["revoked_ledger"] = path

            regions = await self.load_regions()

            stats["non_priority"] = 0
            if options.priority_only:
                priority, non_priority = self.split_priority(vendors, regions)
                if options.archive_non_priority:
                    path = await writer.archive_non_priority(
                        [vendor.to_document() for vendor in non_priority]
                    )
                    if path:
                        artifacts["non_priority"] = path
                if options.delete_non_priority:
                    stats["non_priority"] = len(non_priority)
                    vendors = priority

            if options.clean_addresses:
                vendors = self.clean_stage(vendors)

            geocoded = await self.batch_geocoder.geocode_all(
                vendors,
                concurrency=options.concurrency,
                delay_ms=options.delay_ms,
                provider=options.provider,
                force=options.force_geocode,
            )
            vendors = geocoded.vendors
            stats["geocoded"] = geocoded.stats.successful - geocoded.stats.skipped
            stats["already_geocoded"] = geocoded.stats.skipped
            stats["geocode_failed"] = geocoded.stats.failed
            path = await writer.write_failures(
                "geocode_errors", [error.model_dump() for error in geocoded.errors]
            )
            if path:
                artifacts["geocode_errors"] = path

            failed_ids = {error.vendorId for error in geocoded.errors}
            retry = [vendor for vendor in vendors if vendor.id in failed_ids]
            stats["invalid_coordinates"] = 0
            if options.validate_coordinates:
                checked = vendors
                vendors, invalid_coords = self.validate_coordinates_stage(checked)
                stats["invalid_coordinates"] = len(invalid_coords)
                path = await writer.write_failures("invalid_coordinates", invalid_coords)
                if path:
                    artifacts["invalid_coordinates"] = path
                valid_ids = {vendor.id for vendor in vendors}
                retry = [vendor for vendor in checked if vendor.id not in valid_ids]

            path = await writer.write_failures("retry_vendors", self.retry_documents(retry))
            if path:
                artifacts["retry_vendors"] = path
                logger.info(f"Retry them with --input {path}, optionally with --provider rapidapi")

            vendors = self.enrich_stage(vendors, regions)
            categorized = self.categorize(vendors)
            stats["active"] = len(categorized.active)
            stats["priority_only"] = len(categorized.priorityOnly)
            stats["other"] = len(categorized.other)

            if options.save_categorized:
                written = await writer.write_categorized(
                    self._output_path(input_path),
                    {
                        "active": [v.to_document() for v in categorized.active],
                        "priority": [v.to_document() for v in categorized.priorityOnly],
                        "other": [v.to_document() for v in categorized.other],
                    },
                )
                artifacts.update({f"categorized_{k}": v for k, v in written.items()})

            error = None
            stats["synced"] = 0
            if not options.skip_sync and self.store is not None:
                sync_results = await self.persist(categorized)
                stats["synced"] = sum(result.successful for result in sync_results)
                stats["sync_failed"] = sum(result.failed for result in sync_results)
                failed = [result for result in sync_results if not result.success]
                if failed:
                    error = "; ".join(
                        f"{result.collection}: {result.error}" for result in failed
                    )
                elif options.delete_after_sync and os.path.exists(input_path):
                    os.remove(input_path)
                    logger.info(f"Deleted input file {input_path} after successful sync")
            elif not options.skip_sync:
                logger.warning("Sync requested but no document store is configured")

            self.log_summary(stats)
            return RunResult(
                success=error is None,
                error=error,
                stats=stats,
                categorized=categorized,
                artifacts=artifacts,
            )

        except InputFileError as e:
            logger.error(f"Aborting run: {e}")
            return RunResult(success=False, error=str(e), stats=stats, artifacts=artifacts)
        except OSError as e:
            logger.error(f"I/O failure during run: {e}", exc_info=True)
            return RunResult(
                success=False, error=f"I/O failure: {e}", stats=stats, artifacts=artifacts
            )
        except Exception as e:
            logger.error(f"Pipeline run failed: {e}", exc_info=True)
            return RunResult(success=False, error=str(e), stats=stats, artifacts=artifacts)

    def log_summary(self, stats: Dict[str, Any]):
        logger.info("=== Processing summary ===")
        for label, key in [
            ("Total input", "total"),
            ("Invalid", "invalid"),
            ("Revoked", "revoked"),
            ("Non-priority (archived)", "non_priority"),
            ("Geocoded", "geocoded"),
            ("Already geocoded", "already_geocoded"),
            ("Geocoding failed", "geocode_failed"),
            ("Invalid coordinates", "invalid_coordinates"),
            ("Active", "active"),
            ("Priority-only", "priority_only"),
            ("Other", "other"),
            ("Synced", "synced"),
        ]:
            logger.info(f"  {label}: {stats.get(key, 0)}")

    async def close(self):
        await self.geocoding_client.close()
        if self.store is not None:
            await self.store.close()
