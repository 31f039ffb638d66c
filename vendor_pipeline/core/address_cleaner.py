"""
Address cleanup ahead of geocoding.

Secondary designators (suites, apartments, floors, lots) confuse most
geocoders, so they are stripped before the lookup. The ZIP code is always
taken from the original text so that cleaning can never lose it.
"""

import re
import logging
from typing import Optional, List, Tuple, Pattern

from vendor_pipeline.models.results import CleanedAddress

logger = logging.getLogger(__name__)

ZIP_RE = re.compile(r"\b(\d{5})(?:-\d{4})?\b")
STATE_ZIP_RE = re.compile(r"\b[A-Z]{2}\s+\d{5}(?:-\d{4})?\b")
COUNTRY_MARKER_RE = re.compile(r"\b(?:UNITED STATES|USA|US)\b", re.IGNORECASE)
CANONICAL_RE = re.compile(
    r"^(?P<street>[^,]+),\s*(?P<city>[^,]+),\s*(?P<state>[A-Za-z]{2})\s+(?P<zip>\d{5})(?:-\d{4})?$"
)

DEFAULT_COUNTRY = "UNITED STATES"

# Applied in order; each entry is (pattern, modification tag).
STRIP_RULES: List[Tuple[Pattern, str]] = [
    (
        re.compile(r",?\s*\b(?:Suite|Ste\.?|Unit|Bldg\.?|Building)\s+#?[A-Za-z0-9-]+", re.IGNORECASE),
        "suite/unit info",
    ),
    (
        re.compile(r",?\s*\b(?:Apt\.?|Apartment)\s+#?[A-Za-z0-9-]+", re.IGNORECASE),
        "apartment info",
    ),
    (
        re.compile(r",?\s*\b(?:Floor|(?-i:Fl)\.?|Space|Sp\.?|Room|Rm\.?)\s+#?[A-Za-z0-9-]+", re.IGNORECASE),
        "floor/space info",
    ),
    (re.compile(r"\s*\b(?:Upper|Lower) (?:Level|Floor)\b", re.IGNORECASE), "level designator"),
    (re.compile(r"\s*\(.*?\)"), "parenthetical info"),
    (
        re.compile(r",\s*(?:UNITED STATES(?: OF AMERICA)?|USA)\s*$", re.IGNORECASE),
        "country suffix",
    ),
    (
        re.compile(r"\bLot \d+[,\s]+Block \d+[,\s]+.*?(?=,\s+[\w .'-]+,\s+[A-Z]{2}\b)", re.IGNORECASE),
        "lot/block designation",
    ),
]


def extract_zip_code(address: Optional[str]) -> Optional[str]:
    """Return the first 5-digit ZIP in ``address`` (any +4 extension dropped)."""
    if not address:
        return None
    match = ZIP_RE.search(address)
    return match.group(1) if match else None


def _tidy(text: str) -> str:
    text = re.sub(r",\s*,", ",", text)
    text = re.sub(r"\s+,", ",", text)
    text = re.sub(r",+", ",", text)
    text = re.sub(r"\s+", " ", text).strip()
    text = re.sub(r"^,\s*", "", text)
    return re.sub(r",$", "", text).strip()


def clean_address(
    address: Optional[str],
    canonicalize: bool = False,
    country: str = DEFAULT_COUNTRY,
) -> CleanedAddress:
    """
    Strip secondary address information so the geocoder sees the primary
    street address only.

    Args:
        address: Free-text address as it came from the vendor listing.
        canonicalize: Rebuild "street, city, STATE ZIP, COUNTRY" when the
            address has that shape, or append the country when it only has
            a state/ZIP pair.
        country: Country used by ``canonicalize``.

    Returns:
        CleanedAddress with the modifications that were applied. Never raises.
    """
    original = address or ""
    cleaned = original
    modifications: List[str] = []

    for pattern, name in STRIP_RULES:
        updated = pattern.sub("", cleaned)
        if updated != cleaned:
            modifications.append(f"Removed {name}")
            cleaned = updated

    cleaned = _tidy(cleaned)

    if canonicalize and cleaned:
        match = CANONICAL_RE.match(cleaned)
        if match:
            rebuilt = (
                f"{match.group('street').strip()}, {match.group('city').strip()}, "
                f"{match.group('state').upper()} {match.group('zip')}, {country}"
            )
            if rebuilt != cleaned:
                modifications.append("Rebuilt canonical address")
            cleaned = rebuilt
        elif STATE_ZIP_RE.search(cleaned) and not COUNTRY_MARKER_RE.search(cleaned):
            cleaned = f"{cleaned}, {country}"
            modifications.append("Appended country suffix")

    return CleanedAddress(
        original=original,
        cleaned=cleaned,
        extractedZip=extract_zip_code(original),
        modifications=modifications,
        wasModified=original != cleaned,
    )
