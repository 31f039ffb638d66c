import re
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator

ZIP_PATTERN = r"^\d{5}$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Coordinates(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class Location(BaseModel):
    model_config = ConfigDict(extra="allow")

    address: str = ""
    originalAddress: Optional[str] = None
    zipCode: Optional[str] = Field(default=None, pattern=ZIP_PATTERN)
    coordinates: Coordinates = Field(default_factory=Coordinates)


class Social(BaseModel):
    instagram: Optional[str] = None
    facebook: Optional[str] = None


class Contact(BaseModel):
    phone: Optional[str] = None
    email: Optional[str] = None
    social: Social = Field(default_factory=Social)

    @field_validator("email")
    @classmethod
    def email_looks_valid(cls, value: Optional[str]) -> Optional[str]:
        if value and not re.match(EMAIL_PATTERN, value):
            raise ValueError(f"invalid email address: {value}")
        return value


class RegionInfo(BaseModel):
    regionId: Optional[str] = None
    regionName: Optional[str] = "Unknown"
    isActiveRegion: bool = False
    isPriorityRegion: bool = False
    lastRegionCheck: Optional[str] = None


class Vendor(BaseModel):
    """
    Canonical vendor record shared by every pipeline stage.

    Extra keys from the source data (business_license, license_type, rating...)
    are kept so nothing is lost between ingestion and persistence.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    name: str = ""
    status: Optional[str] = None
    statusCategory: str = "unknown"
    business_license: Optional[str] = None
    location: Location = Field(default_factory=Location)
    contact: Contact = Field(default_factory=Contact)
    regionInfo: Optional[RegionInfo] = None
    hours: Dict[str, Any] = Field(default_factory=dict)
    deals: List[Dict[str, Any]] = Field(default_factory=list)
    isPartner: bool = False
    lastUpdated: Optional[str] = None
    hasValidCoordinates: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def id_as_string(cls, value: Any) -> Any:
        # Numeric ids from spreadsheets are stored as strings
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(int(value)) if float(value).is_integer() else str(value)
        return value

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
