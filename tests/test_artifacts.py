import json
import os
from datetime import datetime, timezone

import pytest

from vendor_pipeline.core.artifacts import ArtifactWriter, merge_revoked, run_timestamp


def test_run_timestamp_is_filesystem_safe():
    when = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
    assert run_timestamp(when) == "2024-01-02T03-04-05-678Z"


def test_merge_revoked_updates_by_license_then_id():
    existing = [
        {"id": "1", "business_license": "L-1", "name": "Old", "lastUpdated": "t0"},
        {"id": "2", "name": "No license", "lastUpdated": "t0"},
    ]
    revoked = [
        {"id": "99", "business_license": "L-1", "name": "Renamed"},
        {"id": "2", "name": "No license"},
        {"id": "3", "name": "New"},
    ]
    ledger, new_count, updated_count = merge_revoked(existing, revoked, "t1")
    assert (new_count, updated_count) == (1, 2)
    assert [entry["name"] for entry in ledger] == ["Renamed", "No license", "New"]
    assert all(entry["lastUpdated"] == "t1" for entry in ledger)
    # existing list untouched
    assert existing[0]["name"] == "Old"


def test_merge_revoked_is_idempotent():
    revoked = [{"id": "2", "business_license": "L-2", "status": "Revoked"}]
    first, _, _ = merge_revoked([], revoked, "t1")
    second, new_count, updated_count = merge_revoked(first, revoked, "t2")
    assert len(second) == 1
    assert (new_count, updated_count) == (0, 1)
    assert second[0]["lastUpdated"] == "t2"


@pytest.mark.asyncio
async def test_ledger_file_merged_across_runs(tmp_path):
    failures = tmp_path / "failures"
    revoked = [{"id": "2", "business_license": "L-2", "status": "Revoked"}]

    first = ArtifactWriter(str(failures), str(tmp_path / "archive"), timestamp="run1")
    path = await first.update_revoked_ledger(revoked, "t1")
    second = ArtifactWriter(str(failures), str(tmp_path / "archive"), timestamp="run2")
    await second.update_revoked_ledger(revoked, "t2")

    ledger = json.loads(open(path).read())
    assert len(ledger) == 1
    assert ledger[0]["lastUpdated"] == "t2"
    assert (failures / "revoked_vendors_run1.json").exists()
    assert (failures / "revoked_vendors_run2.json").exists()


@pytest.mark.asyncio
async def test_corrupt_ledger_is_replaced(tmp_path):
    (tmp_path / "revoked_vendors.json").write_text("{not json")
    writer = ArtifactWriter(str(tmp_path), str(tmp_path), timestamp="ts")
    path = await writer.update_revoked_ledger([{"id": "5"}], "now")
    assert json.loads(open(path).read()) == [{"id": "5", "lastUpdated": "now"}]


@pytest.mark.asyncio
async def test_nothing_written_for_empty_collections(tmp_path):
    writer = ArtifactWriter(str(tmp_path / "f"), str(tmp_path / "a"), timestamp="ts")
    assert await writer.update_revoked_ledger([], "now") is None
    assert await writer.write_failures("invalid_vendors", []) is None
    assert await writer.archive_non_priority([]) is None
    assert not (tmp_path / "f").exists()


@pytest.mark.asyncio
async def test_archive_input(tmp_path):
    source = tmp_path / "vendors.json"
    source.write_text("[]")
    writer = ArtifactWriter(timestamp="ts")

    archived = await writer.archive_input(str(source))
    assert archived == os.path.join(str(tmp_path), "archive", "vendors_processed_ts.json")
    assert source.exists()

    await writer.archive_input(str(source), delete_original=True)
    assert not source.exists()
    assert os.path.exists(archived)


@pytest.mark.asyncio
async def test_side_files_and_categorized_outputs(tmp_path):
    writer = ArtifactWriter(str(tmp_path / "failures"), str(tmp_path / "archive"), timestamp="ts")
    path = await writer.write_failures("invalid_coordinates", [{"vendor": {"id": "1"}, "issues": ["x"]}])
    assert path.endswith(os.path.join("failures", "invalid_coordinates_ts.json"))

    path = await writer.archive_non_priority([{"id": "9"}])
    assert path.endswith(os.path.join("non_priority_vendors", "non_priority_vendors_ts.json"))

    written = await writer.write_categorized(
        str(tmp_path / "out" / "vendors.json"), {"active": [{"id": "1"}], "other": []}
    )
    assert written["active"].endswith("vendors_active.json")
    assert json.loads(open(written["other"]).read()) == []
