from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field

from vendor_pipeline.models.vendor import Coordinates, Vendor


class GeocodeResult(BaseModel):
    """Outcome of a single geocode attempt. Never persisted directly."""

    success: bool
    coordinates: Optional[Coordinates] = None
    formattedAddress: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "GeocodeResult":
        return cls(success=False, error=error)


class GeocodeFailure(BaseModel):
    vendorId: str
    name: str = ""
    error: str


class GeocodeStats(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0


class BatchGeocodeResult(BaseModel):
    vendors: List[Vendor] = Field(default_factory=list)
    errors: List[GeocodeFailure] = Field(default_factory=list)
    stats: GeocodeStats = Field(default_factory=GeocodeStats)


class CleanedAddress(BaseModel):
    original: str
    cleaned: str
    extractedZip: Optional[str] = None
    modifications: List[str] = Field(default_factory=list)
    wasModified: bool = False


class CoordinateValidation(BaseModel):
    valid: bool
    issues: List[str] = Field(default_factory=list)
    coordinates: Optional[Dict[str, float]] = None


class CategorizedVendors(BaseModel):
    active: List[Vendor] = Field(default_factory=list)
    priorityOnly: List[Vendor] = Field(default_factory=list)
    other: List[Vendor] = Field(default_factory=list)

    def total(self) -> int:
        return len(self.active) + len(self.priorityOnly) + len(self.other)


class SyncResult(BaseModel):
    success: bool = True
    collection: str
    total: int = 0
    successful: int = 0
    failed: int = 0
    error: Optional[str] = None


class RunResult(BaseModel):
    success: bool
    error: Optional[str] = None
    stats: Dict[str, Any] = Field(default_factory=dict)
    categorized: Optional[CategorizedVendors] = None
    artifacts: Dict[str, str] = Field(default_factory=dict)
