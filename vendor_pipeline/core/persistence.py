import logging
from typing import List, Dict, Any

from pydantic import ValidationError

from vendor_pipeline.interfaces.storage_interface import DocumentStoreInterface
from vendor_pipeline.models.region import Region
from vendor_pipeline.models.results import SyncResult
from vendor_pipeline.models.vendor import Vendor, utc_now_iso

logger = logging.getLogger(__name__)


def chunked(items: List[Any], size: int):
    for start in range(0, len(items), size):
        yield items[start : start + size]


async def sync_vendors(
    store: DocumentStoreInterface,
    vendors: List[Vendor],
    collection: str,
    merge: bool = True,
    batch_size: int = DocumentStoreInterface.MAX_BATCH_SIZE,
) -> SyncResult:
    """
    Writes vendors to a collection keyed by vendor id, in commits of at most
    ``batch_size`` documents. A failed commit is reported and the remaining
    batches are still attempted; nothing already committed is rolled back.
    """
    batch_size = max(1, min(batch_size, store.MAX_BATCH_SIZE))
    result = SyncResult(collection=collection, total=len(vendors))
    if not vendors:
        return result

    synced_at = utc_now_iso()
    docs = [{**vendor.to_document(), "lastUpdated": synced_at} for vendor in vendors]

    for batch_number, batch in enumerate(chunked(docs, batch_size), start=1):
        try:
            await store.commit_batch(collection, batch, merge=merge)
            result.successful += len(batch)
        except Exception as e:
            logger.error(
                f"Batch {batch_number} ({len(batch)} documents) to {collection} failed: {e}",
                exc_info=True,
            )
            result.failed += len(batch)
            result.success = False
            result.error = str(e)

    logger.info(
        f"Synced {result.successful}/{result.total} vendors to {collection}"
        + (f" ({result.failed} failed)" if result.failed else "")
    )
    return result


async def fetch_regions(
    store: DocumentStoreInterface, collection: str = "regions"
) -> List[Region]:
    """Reads regions in stored order, skipping documents that do not parse."""
    regions = []
    for doc in await store.get(collection):
        try:
            regions.append(Region.model_validate(doc))
        except ValidationError as e:
            logger.warning(f"Skipping malformed region document {doc.get('id')}: {e}")
    logger.info(f"Fetched {len(regions)} regions from {collection}")
    return regions


async def seed_regions(
    store: DocumentStoreInterface, regions: List[Region], collection: str = "regions"
) -> int:
    """Writes seed regions into an empty collection. Returns how many were written."""
    existing = await store.get(collection)
    if existing:
        logger.info(f"{collection} already holds {len(existing)} regions, not seeding")
        return 0

    docs: List[Dict[str, Any]] = [
        {**region.model_dump(), "id": region.id or region.name.lower()}
        for region in regions
    ]
    for batch in chunked(docs, store.MAX_BATCH_SIZE):
        await store.commit_batch(collection, batch)
    logger.info(f"Seeded {len(docs)} regions into {collection}")
    return len(docs)
