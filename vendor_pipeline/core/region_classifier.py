import logging
from typing import List, Optional

from vendor_pipeline.core.address_cleaner import extract_zip_code
from vendor_pipeline.models.region import Region
from vendor_pipeline.models.vendor import RegionInfo, Vendor, utc_now_iso

logger = logging.getLogger(__name__)


def resolve_zip_code(vendor: Vendor) -> Optional[str]:
    """The vendor's ZIP field if set, otherwise whatever the address yields."""
    if vendor.location.zipCode:
        return vendor.location.zipCode
    return extract_zip_code(vendor.location.address)


def region_for(vendor: Vendor, regions: List[Region]) -> Optional[Region]:
    """
    First region in ``regions`` whose ZIP set holds the vendor's ZIP.

    Order matters: a ZIP claimed by several regions resolves to the earliest.
    """
    zip_code = resolve_zip_code(vendor)
    if not zip_code:
        return None
    for region in regions:
        if region.contains(zip_code):
            return region
    return None


def is_priority(vendor: Vendor, regions: List[Region]) -> bool:
    zip_code = resolve_zip_code(vendor)
    if not zip_code:
        return False
    return any(region.isPriority and region.contains(zip_code) for region in regions)


def is_active(vendor: Vendor, regions: List[Region]) -> bool:
    zip_code = resolve_zip_code(vendor)
    if not zip_code:
        return False
    return any(region.isActive and region.contains(zip_code) for region in regions)


def build_region_info(
    vendor: Vendor, regions: List[Region], checked_at: Optional[str] = None
) -> RegionInfo:
    checked_at = checked_at or utc_now_iso()
    region = region_for(vendor, regions)
    if region is None:
        return RegionInfo(
            regionId=None,
            regionName="Unknown",
            isActiveRegion=False,
            isPriorityRegion=False,
            lastRegionCheck=checked_at,
        )
    return RegionInfo(
        regionId=region.id,
        regionName=region.name,
        isActiveRegion=region.isActive,
        isPriorityRegion=region.isPriority,
        lastRegionCheck=checked_at,
    )


def count_by_region(vendors: List[Vendor], regions: List[Region]) -> dict:
    counts: dict = {}
    for vendor in vendors:
        region = region_for(vendor, regions)
        name = region.name if region else "Unknown"
        counts[name] = counts.get(name, 0) + 1
    return counts
