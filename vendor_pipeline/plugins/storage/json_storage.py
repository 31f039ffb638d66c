import asyncio
import json
import logging
import os
import uuid
from datetime import datetime
from typing import List, Dict, Any

import aiofiles

from vendor_pipeline.interfaces.storage_interface import DocumentStoreInterface

logger = logging.getLogger(__name__)


def json_serializer(obj):
    """JSON serializer for objects not serializable by default json code"""
    if isinstance(obj, datetime):
        return obj.isoformat()
    raise TypeError(f"Type {type(obj)} not serializable")


class JSONDocumentStore(DocumentStoreInterface):
    """
    Stores each collection as one JSON object file ``<data_dir>/<collection>.json``
    mapping document id to document. Whole-file rewrite per commit.
    """

    def __init__(self, config: Dict[str, Any] = None):
        self.config = config or {}
        self.data_dir = self.config.get("data_dir", "data/store")
        self.lock = asyncio.Lock()

    def _path(self, collection: str) -> str:
        return os.path.join(self.data_dir, f"{collection}.json")

    async def _load(self, collection: str) -> Dict[str, Dict[str, Any]]:
        path = self._path(collection)
        if not os.path.exists(path):
            return {}
        async with aiofiles.open(path, mode="r", encoding="utf-8") as f:
            content = await f.read()
        if not content.strip():
            return {}
        return json.loads(content)

    async def _dump(self, collection: str, docs: Dict[str, Dict[str, Any]]):
        os.makedirs(self.data_dir, exist_ok=True)
        path = self._path(collection)
        tmp_path = f"{path}.tmp"
        async with aiofiles.open(tmp_path, mode="w", encoding="utf-8") as f:
            await f.write(
                json.dumps(docs, ensure_ascii=False, indent=2, default=json_serializer)
            )
        os.replace(tmp_path, path)

    @staticmethod
    def _apply(existing: Dict[str, Dict[str, Any]], doc_id: str, doc, merge: bool):
        if merge and doc_id in existing:
            existing[doc_id] = {**existing[doc_id], **doc}
        else:
            existing[doc_id] = dict(doc)

    async def get(self, collection: str) -> List[Dict[str, Any]]:
        async with self.lock:
            docs = await self._load(collection)
        return [{**doc, "id": doc_id} for doc_id, doc in docs.items()]

    async def add(self, collection: str, doc: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        await self.set(collection, doc_id, doc)
        return doc_id

    async def set(
        self, collection: str, doc_id: str, doc: Dict[str, Any], merge: bool = False
    ):
        async with self.lock:
            docs = await self._load(collection)
            self._apply(docs, doc_id, doc, merge)
            await self._dump(collection, docs)

    async def delete(self, collection: str, doc_id: str):
        async with self.lock:
            docs = await self._load(collection)
            if docs.pop(doc_id, None) is not None:
                await self._dump(collection, docs)

    async def commit_batch(
        self, collection: str, docs: List[Dict[str, Any]], merge: bool = False
    ):
        self._check_batch(docs, collection)
        async with self.lock:
            existing = await self._load(collection)
            for doc in docs:
                self._apply(existing, str(doc["id"]), doc, merge)
            await self._dump(collection, existing)
        logger.info(f"Committed {len(docs)} documents to {self._path(collection)}")
