from datetime import datetime, timezone

import pytest

from vendor_pipeline.core.vendor_normalizer import (
    classify_status,
    is_revoked,
    normalize_vendor,
    validate_vendor,
    vendor_from_csv_row,
)


@pytest.mark.parametrize(
    "status,expected",
    [
        ("Active-Operating", "active"),
        ("Pending Inspection", "active"),
        ("delegated", "active"),
        ("Expired", "inactive"),
        ("Pending", "inactive"),
        ("REVOKED", "revoked"),
        ("Something else", "unknown"),
        (None, "unknown"),
        ("", "unknown"),
    ],
)
def test_classify_status(status, expected):
    assert classify_status(status) == expected


def test_is_revoked_is_exact_and_case_insensitive():
    assert is_revoked({"status": " Revoked "})
    assert not is_revoked({"status": "Revoked-Pending"})
    assert not is_revoked({})


def test_legacy_flat_coordinates_are_migrated():
    raw = {
        "id": "1",
        "location": {"address": "1 A St, Anchorage, AK 99501", "latitude": "61.2", "longitude": -149.9},
    }
    vendor = normalize_vendor(raw)
    assert vendor["location"]["coordinates"] == {"latitude": 61.2, "longitude": -149.9}
    assert "latitude" not in vendor["location"]
    assert vendor["hasValidCoordinates"] is True
    assert vendor["location"]["zipCode"] == "99501"
    # input untouched
    assert raw["location"]["latitude"] == "61.2"


def test_defaults_are_materialized():
    vendor = normalize_vendor({"id": 7})
    assert vendor["location"] == {
        "address": "",
        "zipCode": None,
        "coordinates": {"latitude": None, "longitude": None},
    }
    assert vendor["contact"] == {
        "phone": None,
        "email": None,
        "social": {"instagram": None, "facebook": None},
    }
    assert vendor["hours"] == {}
    assert vendor["deals"] == []
    assert vendor["isPartner"] is False
    assert vendor["hasValidCoordinates"] is False
    assert vendor["statusCategory"] == "unknown"


def test_explicit_null_zip_is_kept():
    vendor = normalize_vendor({"id": "1", "location": {"address": "x 99501", "zipCode": None}})
    assert vendor["location"]["zipCode"] is None


def test_string_location_and_non_dict_input():
    assert normalize_vendor({"id": "1", "location": "9 B Rd, Juneau, AK 99801"})["location"]["zipCode"] == "99801"
    assert normalize_vendor("garbage")["location"]["address"] == ""


def test_non_numeric_coordinates_flag_false():
    vendor = normalize_vendor({"id": "1", "location": {"coordinates": {"latitude": "north", "longitude": "west"}}})
    assert vendor["hasValidCoordinates"] is False
    _, errors = validate_vendor(vendor)
    assert any(error["loc"].startswith("location.coordinates") for error in errors)


def test_last_updated_is_iso():
    when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert normalize_vendor({"id": "1", "lastUpdated": when})["lastUpdated"] == when.isoformat()
    epoch_ms = int(when.timestamp() * 1000)
    assert normalize_vendor({"id": "1", "lastUpdated": epoch_ms})["lastUpdated"] == when.isoformat()
    assert normalize_vendor({"id": "1", "lastUpdated": "2024-05-01"})["lastUpdated"] == "2024-05-01"


@pytest.mark.parametrize("value", [1e20, -1e20, float("nan"), float("inf")])
def test_unusable_epoch_last_updated_is_kept_as_text(value):
    vendor = normalize_vendor({"id": "1", "lastUpdated": value})
    assert vendor["lastUpdated"] == str(value)
    assert validate_vendor(vendor)[0] is not None


def test_status_category_is_recorded():
    assert normalize_vendor({"id": "1", "status": "Active-Operating"})["statusCategory"] == "active"
    assert normalize_vendor({"id": "1", "status": "Expired"})["statusCategory"] == "inactive"
    vendor, _ = validate_vendor(normalize_vendor({"id": "1", "status": "Revoked"}))
    assert vendor.statusCategory == "revoked"


def test_validate_vendor_accepts_normalized_record():
    vendor, errors = validate_vendor(normalize_vendor({"id": 42, "name": "Green Leaf", "rating": 4.5}))
    assert errors == []
    assert vendor.id == "42"
    assert vendor.model_extra["rating"] == 4.5


def test_validate_vendor_reports_field_errors():
    _, errors = validate_vendor(normalize_vendor({"name": "No id"}))
    assert [error["loc"] for error in errors] == ["id"]

    _, errors = validate_vendor(
        normalize_vendor({"id": "1", "location": {"zipCode": "995"}, "contact": {"email": "nope"}})
    )
    locs = {error["loc"] for error in errors}
    assert locs == {"location.zipCode", "contact.email"}


def test_vendor_from_csv_row():
    row = {
        "business_id": "B-1",
        "business_name": "Northern Lights",
        "license": "10012",
        "status": "Active-Operating",
        "street": "1 Main St",
        "city": "Anchorage",
        "state": "AK",
        "zip": "99501",
        "latitude": "61.21",
        "longitude": "",
        "email": "info@example.com",
    }
    raw = vendor_from_csv_row(row)
    assert raw["id"] == "B-1"
    assert raw["business_license"] == "10012"
    assert raw["location"]["address"] == "1 Main St, Anchorage, AK 99501"
    assert raw["location"]["latitude"] == 61.21
    assert raw["location"]["longitude"] is None

    vendor, errors = validate_vendor(normalize_vendor(raw))
    assert errors == []
    assert vendor.location.zipCode == "99501"
    assert vendor.hasValidCoordinates is False
