import json

import pytest
from sqlalchemy.dialects import postgresql

from vendor_pipeline.core.persistence import fetch_regions, seed_regions, sync_vendors
from vendor_pipeline.core.plugin_factory import PluginFactory
from vendor_pipeline.models.region import Region, default_regions
from vendor_pipeline.models.vendor import Vendor
from vendor_pipeline.plugins.storage.json_storage import JSONDocumentStore
from vendor_pipeline.plugins.storage.memory_storage import InMemoryDocumentStore
from vendor_pipeline.plugins.storage.postgres_storage import PostgresDocumentStore


class CountingStore(InMemoryDocumentStore):
    def __init__(self, config=None):
        super().__init__(config)
        self.commits = []

    async def commit_batch(self, collection, docs, merge=False):
        self.commits.append(len(docs))
        await super().commit_batch(collection, docs, merge=merge)


@pytest.mark.asyncio
async def test_memory_store_set_merge_delete():
    store = InMemoryDocumentStore()
    await store.set("vendors", "1", {"name": "A", "rating": 3})
    await store.set("vendors", "1", {"name": "B"}, merge=True)
    assert await store.get("vendors") == [{"name": "B", "rating": 3, "id": "1"}]

    await store.set("vendors", "1", {"name": "C"})
    assert await store.get("vendors") == [{"name": "C", "id": "1"}]

    new_id = await store.add("vendors", {"name": "D"})
    await store.delete("vendors", "1")
    assert [doc["id"] for doc in await store.get("vendors")] == [new_id]


@pytest.mark.asyncio
async def test_commit_batch_rejects_oversized_batches():
    store = InMemoryDocumentStore()
    with pytest.raises(ValueError):
        await store.commit_batch("vendors", [{"id": str(i)} for i in range(501)])


@pytest.mark.asyncio
async def test_json_store_roundtrip(tmp_path):
    store = JSONDocumentStore({"data_dir": str(tmp_path)})
    await store.commit_batch("vendors", [{"id": "1", "name": "A"}, {"id": "2", "name": "B"}])
    await store.commit_batch("vendors", [{"id": "1", "status": "Active"}], merge=True)
    await store.delete("vendors", "2")

    docs = await store.get("vendors")
    assert docs == [{"id": "1", "name": "A", "status": "Active"}]
    on_disk = json.loads((tmp_path / "vendors.json").read_text())
    assert on_disk == {"1": {"id": "1", "name": "A", "status": "Active"}}
    assert await store.get("missing") == []


@pytest.mark.asyncio
async def test_sync_vendors_commits_in_chunks():
    store = CountingStore()
    vendors = [Vendor(id=str(i)) for i in range(1200)]
    result = await sync_vendors(store, vendors, "vendors")
    assert store.commits == [500, 500, 200]
    assert (result.success, result.successful, result.failed) == (True, 1200, 0)
    stored = await store.get("vendors")
    assert len(stored) == 1200
    assert all(doc["lastUpdated"] for doc in stored)


@pytest.mark.asyncio
async def test_sync_vendors_reports_failed_batch_and_continues():
    store = InMemoryDocumentStore({"fail_on_commit": ["vendors"]})
    vendors = [Vendor(id=str(i)) for i in range(7)]
    result = await sync_vendors(store, vendors, "vendors", batch_size=3)
    assert result.success is False
    assert result.failed == 3
    assert result.successful == 4
    assert "Simulated commit failure" in result.error
    assert len(await store.get("vendors")) == 4


@pytest.mark.asyncio
async def test_region_seeding_and_fetch_preserve_order():
    store = InMemoryDocumentStore()
    assert await seed_regions(store, default_regions()) == 5
    assert await seed_regions(store, [Region(name="Other")]) == 0
    regions = await fetch_regions(store)
    assert [r.name for r in regions] == ["Anchorage", "MatSu", "Fairbanks", "Kenai", "Juneau"]
    assert regions[0].id == "anchorage"


@pytest.mark.asyncio
async def test_fetch_regions_skips_malformed_documents():
    store = InMemoryDocumentStore()
    await store.set("regions", "bad", {"zipCodes": ["99501"]})
    await store.set("regions", "ok", {"name": "Ok", "zipCodes": ["99501"]})
    assert [r.name for r in await fetch_regions(store)] == ["Ok"]


def test_postgres_connection_string(monkeypatch):
    store = PostgresDocumentStore({"connection_string": "postgres://u:p@db:5432/vendors"})
    assert store._get_connection_string() == "postgresql+asyncpg://u:p@db:5432/vendors"

    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db/vendors")
    assert PostgresDocumentStore()._get_connection_string() == "postgresql+asyncpg://u:p@db/vendors"

    monkeypatch.delenv("DATABASE_URL")
    assert PostgresDocumentStore()._get_connection_string() is None


def test_factory_creates_configured_store(tmp_path):
    factory = PluginFactory(
        {"storage": {"plugin": "JSONDocumentStore", "options": {"data_dir": str(tmp_path)}}}
    )
    store = factory.create_document_store()
    assert isinstance(store, JSONDocumentStore)
    assert store.data_dir == str(tmp_path)

    assert isinstance(
        PluginFactory({"storage": {"plugin": "InMemoryDocumentStore"}}).create_document_store(),
        InMemoryDocumentStore,
    )
    assert PluginFactory({"storage": {"plugin": "NoSuchStore"}}).create_document_store() is None


def test_postgres_reads_collections_in_insertion_order():
    store = PostgresDocumentStore()
    sql = str(store._select_collection("regions").compile(dialect=postgresql.dialect()))
    assert "ORDER BY documents.seq" in sql

    upsert = str(
        store._upsert("regions", [{"doc_id": "a", "data": {}}], merge=True).compile(
            dialect=postgresql.dialect()
        )
    )
    assert "seq =" not in upsert.split("DO UPDATE SET", 1)[1]
