import re
from typing import List, Dict, Any, Optional
from pydantic import BaseModel, Field, field_validator

from vendor_pipeline.models.vendor import utc_now_iso

_ZIP_RE = re.compile(r"^\d{5}$")


class Region(BaseModel):
    """A named set of ZIP codes with rollout flags, read once per run."""

    id: Optional[str] = None
    name: str
    zipCodes: List[str] = Field(default_factory=list)
    isActive: bool = False
    isPriority: bool = False
    lastUpdated: str = Field(default_factory=utc_now_iso)

    @field_validator("zipCodes", mode="before")
    @classmethod
    def dedupe_zip_codes(cls, value: Any) -> List[str]:
        if not isinstance(value, (list, tuple, set)):
            return []
        seen = []
        for zip_code in value:
            cleaned = str(zip_code).strip()
            if _ZIP_RE.match(cleaned) and cleaned not in seen:
                seen.append(cleaned)
        return seen

    @field_validator("isActive", "isPriority", mode="before")
    @classmethod
    def coerce_flag(cls, value: Any) -> bool:
        return bool(value)

    @field_validator("lastUpdated", mode="before")
    @classmethod
    def default_last_updated(cls, value: Any) -> str:
        return value or utc_now_iso()

    def contains(self, zip_code: str) -> bool:
        return zip_code in self.zipCodes


# Seed table used when the region collection is empty.
DEFAULT_REGIONS: Dict[str, List[str]] = {
    "Anchorage": [
        "99501", "99502", "99503", "99504", "99505",
        "99506", "99507", "99508", "99509", "99510",
        "99511", "99513", "99514", "99515", "99516",
        "99517", "99518", "99519", "99520", "99521",
        "99522", "99523", "99524",
    ],
    "MatSu": [
        "99645", "99654", "99623", "99687", "99629",
        "99652", "99694", "99674", "99688", "99695",
    ],
    "Fairbanks": [
        "99701", "99702", "99703", "99705", "99706",
        "99707", "99708", "99709", "99710", "99711",
        "99712", "99714", "99775",
    ],
    "Kenai": [
        "99669", "99611", "99572", "99603", "99635",
        "99639", "99610", "99664", "99672", "99631",
    ],
    "Juneau": ["99801", "99802", "99803", "99811", "99812", "99821"],
}
DEFAULT_ACTIVE_REGIONS = ["Anchorage"]


def default_regions() -> List[Region]:
    return [
        Region(
            id=name.lower(),
            name=name,
            zipCodes=zips,
            isActive=name in DEFAULT_ACTIVE_REGIONS,
            isPriority=True,
        )
        for name, zips in DEFAULT_REGIONS.items()
    ]
