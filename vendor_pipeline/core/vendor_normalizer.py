"""
Coerces heterogeneous vendor listings into the canonical vendor shape.

``normalize_vendor`` is total: whatever comes in, a dict with every
substructure present comes out. Whether that dict is an acceptable vendor is
decided afterwards by ``validate_vendor``.
"""

import copy
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from vendor_pipeline.core.address_cleaner import extract_zip_code
from vendor_pipeline.models.vendor import Vendor

logger = logging.getLogger(__name__)

LICENSE_STATUS: Dict[str, List[str]] = {
    "active": [
        "Active-Operating",
        "Active",
        "Operating",
        "Active-Pending Inspection",
        "Pending Inspection",
        "Delegated",
        "Returned",
    ],
    "inactive": ["Suspended", "Expired", "Surrendered", "Complete", "Pending"],
    "revoked": ["Revoked"],
}


def classify_status(status: Optional[str]) -> str:
    """Map a free-text license status onto active/inactive/revoked/unknown."""
    if not status or not isinstance(status, str):
        return "unknown"
    lowered = status.lower()
    for category in ("active", "inactive", "revoked"):
        if any(term.lower() in lowered for term in LICENSE_STATUS[category]):
            return category
    return "unknown"


def is_revoked(vendor: Any) -> bool:
    status = vendor.get("status") if isinstance(vendor, dict) else getattr(vendor, "status", None)
    return (status or "").strip().lower() == "revoked"


def _to_iso(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc).isoformat()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Epoch milliseconds, as exported by the admin tooling
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()
        except (OverflowError, OSError, ValueError):
            logger.debug(f"Unusable lastUpdated timestamp left as text: {value}")
            return str(value)
    return str(value)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _normalize_location(location: Any) -> Dict[str, Any]:
    if isinstance(location, str):
        location = {"address": location}
    elif not isinstance(location, dict):
        location = {}

    if location.get("address") is None:
        location["address"] = ""
    elif not isinstance(location["address"], str):
        location["address"] = str(location["address"])

    # Legacy shape: latitude/longitude directly on location
    if "latitude" in location and "longitude" in location:
        location["coordinates"] = {
            "latitude": location.pop("latitude"),
            "longitude": location.pop("longitude"),
        }

    if "zipCode" not in location:
        location["zipCode"] = extract_zip_code(location["address"])

    return location


def _normalize_coordinates(location: Dict[str, Any]) -> bool:
    coords = location.get("coordinates")
    if not isinstance(coords, dict):
        coords = {}
    location["coordinates"] = coords

    lat, lng = coords.get("latitude"), coords.get("longitude")
    if lat and lng:
        try:
            coords["latitude"] = float(lat)
            coords["longitude"] = float(lng)
            return True
        except (TypeError, ValueError):
            logger.debug(f"Non-numeric coordinates left for validation: {lat}, {lng}")
            return False

    coords.setdefault("latitude", None)
    coords.setdefault("longitude", None)
    return False


def _normalize_contact(contact: Any) -> Dict[str, Any]:
    contact = contact if isinstance(contact, dict) else {}
    social = contact.get("social") if isinstance(contact.get("social"), dict) else {}
    return {
        **contact,
        "phone": _optional_str(contact.get("phone")),
        "email": _optional_str(contact.get("email")) or None,
        "social": {
            **social,
            "instagram": _optional_str(social.get("instagram")),
            "facebook": _optional_str(social.get("facebook")),
        },
    }


def normalize_vendor(raw: Any) -> Dict[str, Any]:
    """Return a deep-copied vendor dict with every canonical field present."""
    vendor: Dict[str, Any] = copy.deepcopy(raw) if isinstance(raw, dict) else {}

    location = _normalize_location(vendor.get("location"))
    vendor["hasValidCoordinates"] = _normalize_coordinates(location)
    vendor["location"] = location

    vendor["name"] = _optional_str(vendor.get("name")) or ""
    vendor["statusCategory"] = classify_status(vendor.get("status"))
    vendor["contact"] = _normalize_contact(vendor.get("contact"))
    vendor["hours"] = vendor.get("hours") or {}
    vendor["deals"] = vendor.get("deals") or []
    vendor["isPartner"] = bool(vendor.get("isPartner", False))

    if vendor.get("lastUpdated") and not isinstance(vendor["lastUpdated"], str):
        vendor["lastUpdated"] = _to_iso(vendor["lastUpdated"])
    if vendor.get("business_license") is not None:
        vendor["business_license"] = _optional_str(vendor["business_license"])

    return vendor


def validate_vendor(data: Dict[str, Any]) -> Tuple[Optional[Vendor], List[Dict[str, Any]]]:
    """Run the vendor schema. Returns (vendor, []) or (None, error details)."""
    try:
        return Vendor.model_validate(data), []
    except ValidationError as e:
        errors = [
            {
                "loc": ".".join(str(part) for part in err.get("loc", [])),
                "msg": err.get("msg"),
                "type": err.get("type"),
            }
            for err in e.errors()
        ]
        return None, errors


def _first(row: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = row.get(key)
        if value is not None and str(value).strip() != "":
            return str(value).strip()
    return None


def _as_coordinate(value: Optional[str]) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


def vendor_from_csv_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """Map a flat spreadsheet row onto the (legacy) nested vendor shape."""
    address = _first(row, "address")
    if not address:
        parts = [_first(row, "street") or "", _first(row, "city") or ""]
        state_zip = " ".join(p for p in [_first(row, "state"), _first(row, "zip")] if p)
        address = ", ".join(p for p in parts + [state_zip] if p)

    return {
        "id": _first(row, "id", "business_id"),
        "name": _first(row, "name", "business_name"),
        "business_license": _first(row, "business_license", "license"),
        "license_type": _first(row, "license_type", "type"),
        "status": _first(row, "status"),
        "location": {
            "address": address,
            "latitude": _as_coordinate(_first(row, "latitude")),
            "longitude": _as_coordinate(_first(row, "longitude")),
        },
        "contact": {
            "phone": _first(row, "phone"),
            "email": _first(row, "email"),
            "social": {
                "instagram": _first(row, "instagram"),
                "facebook": _first(row, "facebook"),
            },
        },
    }
