"""
Side files produced by a pipeline run.

Every collection that leaves the success path is written as a JSON array
under the failures or archive directory, with the run timestamp embedded in
the file name. The revoked ledger is the one cumulative file: it is read,
merged and rewritten, never replaced wholesale.
"""

import json
import logging
import os
import shutil
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional, Tuple

import aiofiles

from vendor_pipeline.plugins.storage.json_storage import json_serializer

logger = logging.getLogger(__name__)

REVOKED_LEDGER_NAME = "revoked_vendors.json"


def run_timestamp(now: Optional[datetime] = None) -> str:
    """ISO timestamp made filesystem safe: ``:`` and ``.`` become ``-``."""
    now = now or datetime.now(timezone.utc)
    iso = now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.") + (
        f"{now.microsecond // 1000:03d}Z"
    )
    return iso.replace(":", "-").replace(".", "-")


def merge_revoked(
    existing: List[Dict[str, Any]], revoked: List[Dict[str, Any]], now: str
) -> Tuple[List[Dict[str, Any]], int, int]:
    """
    Merges this run's revoked vendors into the ledger, keyed by business
    license or id. Known entries are updated in place with a fresh
    ``lastUpdated``; unknown ones are appended. Returns (ledger, new, updated).
    """
    ledger = [dict(entry) for entry in existing]
    positions = {}
    for index, entry in enumerate(ledger):
        key = entry.get("business_license") or entry.get("id")
        if key:
            positions.setdefault(key, index)

    new_count = updated_count = 0
    for vendor in revoked:
        key = vendor.get("business_license") or vendor.get("id")
        if key and key in positions:
            index = positions[key]
            ledger[index] = {**ledger[index], **vendor, "lastUpdated": now}
            updated_count += 1
        else:
            ledger.append({**vendor, "lastUpdated": now})
            if key:
                positions[key] = len(ledger) - 1
            new_count += 1

    return ledger, new_count, updated_count


class ArtifactWriter:
    """Writes the per-run artifacts under the configured directories."""

    def __init__(
        self,
        failures_dir: str = "data/failures",
        archive_dir: str = "data/archive",
        timestamp: Optional[str] = None,
    ):
        self.failures_dir = failures_dir
        self.archive_dir = archive_dir
        self.timestamp = timestamp or run_timestamp()

    async def write_json(self, path: str, data: Any) -> str:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        async with aiofiles.open(path, mode="w", encoding="utf-8") as f:
            await f.write(
                json.dumps(data, ensure_ascii=False, indent=2, default=json_serializer)
            )
        logger.debug(f"Wrote {path}")
        return path

    async def read_json(self, path: str) -> Any:
        async with aiofiles.open(path, mode="r", encoding="utf-8") as f:
            return json.loads(await f.read())

    async def archive_input(self, input_path: str, delete_original: bool = False) -> str:
        """Copies the input next to itself under archive/ before anything else runs."""
        input_dir = os.path.dirname(os.path.abspath(input_path))
        stem = os.path.splitext(os.path.basename(input_path))[0]
        extension = os.path.splitext(input_path)[1] or ".json"
        archive_dir = os.path.join(input_dir, "archive")
        os.makedirs(archive_dir, exist_ok=True)

        archived_path = os.path.join(
            archive_dir, f"{stem}_processed_{self.timestamp}{extension}"
        )
        shutil.copyfile(input_path, archived_path)

        if delete_original:
            os.remove(input_path)
            logger.info(f"Archived input to {archived_path} and removed original")
        else:
            logger.info(f"Archived input file to {archived_path}")
        return archived_path

    async def update_revoked_ledger(
        self, revoked: List[Dict[str, Any]], now: str
    ) -> Optional[str]:
        if not revoked:
            return None

        ledger_path = os.path.join(self.failures_dir, REVOKED_LEDGER_NAME)
        existing: List[Dict[str, Any]] = []
        if os.path.exists(ledger_path):
            try:
                loaded = await self.read_json(ledger_path)
                existing = loaded if isinstance(loaded, list) else []
                logger.info(f"Loaded {len(existing)} existing revoked vendors from {ledger_path}")
            except ValueError as e:
                logger.warning(
                    f"Error reading existing revoked vendors file: {e}. Creating a new one instead"
                )

        ledger, new_count, updated_count = merge_revoked(existing, revoked, now)
        await self.write_json(ledger_path, ledger)
        logger.info(
            f"Saved {len(ledger)} revoked vendors to {ledger_path} "
            f"({new_count} new, {updated_count} updated)"
        )

        backup_path = os.path.join(
            self.failures_dir, f"revoked_vendors_{self.timestamp}.json"
        )
        await self.write_json(backup_path, ledger)
        logger.info(f"Created backup of revoked vendors at {backup_path}")
        return ledger_path

    async def write_failures(self, name: str, records: List[Dict[str, Any]]) -> Optional[str]:
        """Writes ``failures/<name>_<ts>.json`` when there is anything to write."""
        if not records:
            return None
        path = os.path.join(self.failures_dir, f"{name}_{self.timestamp}.json")
        await self.write_json(path, records)
        logger.warning(f"Saved {len(records)} {name.replace('_', ' ')} to {path}")
        return path

    async def archive_non_priority(self, vendors: List[Dict[str, Any]]) -> Optional[str]:
        if not vendors:
            return None
        path = os.path.join(
            self.archive_dir,
            "non_priority_vendors",
            f"non_priority_vendors_{self.timestamp}.json",
        )
        await self.write_json(path, vendors)
        logger.info(f"Archived {len(vendors)} non-priority vendors to {path}")
        return path

    async def write_categorized(
        self, output_path: str, buckets: Dict[str, List[Dict[str, Any]]]
    ) -> Dict[str, str]:
        """Writes ``<stem>_<bucket>.json`` next to ``output_path`` for each bucket."""
        base, extension = os.path.splitext(output_path)
        written = {}
        for suffix, vendors in buckets.items():
            path = f"{base}_{suffix}{extension or '.json'}"
            await self.write_json(path, vendors)
            written[suffix] = path
            logger.info(f"Saved {len(vendors)} {suffix} vendors to {path}")
        return written
