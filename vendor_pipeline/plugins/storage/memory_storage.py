import copy
import logging
import uuid
from typing import List, Dict, Any

from vendor_pipeline.interfaces.storage_interface import DocumentStoreInterface

logger = logging.getLogger(__name__)


class InMemoryDocumentStore(DocumentStoreInterface):
    """Keeps collections in a dict. Used for dry runs and tests."""

    def __init__(self, config: Dict[str, Any] = None):
        self.config = config or {}
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        # Collection names whose next commit should fail (test hook)
        self.fail_on_commit = set(self.config.get("fail_on_commit", []))

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self.collections.setdefault(name, {})

    async def get(self, collection: str) -> List[Dict[str, Any]]:
        return [
            {**copy.deepcopy(doc), "id": doc_id}
            for doc_id, doc in self._collection(collection).items()
        ]

    async def add(self, collection: str, doc: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        self._collection(collection)[doc_id] = copy.deepcopy(doc)
        return doc_id

    async def set(
        self, collection: str, doc_id: str, doc: Dict[str, Any], merge: bool = False
    ):
        docs = self._collection(collection)
        if merge and doc_id in docs:
            docs[doc_id] = {**docs[doc_id], **copy.deepcopy(doc)}
        else:
            docs[doc_id] = copy.deepcopy(doc)

    async def delete(self, collection: str, doc_id: str):
        self._collection(collection).pop(doc_id, None)

    async def commit_batch(
        self, collection: str, docs: List[Dict[str, Any]], merge: bool = False
    ):
        self._check_batch(docs, collection)
        if collection in self.fail_on_commit:
            self.fail_on_commit.discard(collection)
            raise RuntimeError(f"Simulated commit failure for {collection}")
        for doc in docs:
            await self.set(collection, str(doc["id"]), doc, merge=merge)
        logger.debug(f"Committed {len(docs)} documents to {collection}")
