import abc
from typing import List, Dict, Any, Optional


class DocumentStoreInterface(abc.ABC):
    """Interface for a keyed document map per collection name."""

    # Largest number of writes a single commit may carry
    MAX_BATCH_SIZE = 500

    @abc.abstractmethod
    async def get(self, collection: str) -> List[Dict[str, Any]]:
        """Returns every document in the collection, each with its "id"."""
        pass

    @abc.abstractmethod
    async def add(self, collection: str, doc: Dict[str, Any]) -> str:
        """Stores a document under a generated id and returns that id."""
        pass

    @abc.abstractmethod
    async def set(
        self, collection: str, doc_id: str, doc: Dict[str, Any], merge: bool = False
    ):
        """Writes a document. With merge=True top-level keys are updated in place."""
        pass

    @abc.abstractmethod
    async def delete(self, collection: str, doc_id: str):
        pass

    @abc.abstractmethod
    async def commit_batch(
        self, collection: str, docs: List[Dict[str, Any]], merge: bool = False
    ):
        """
        Writes up to MAX_BATCH_SIZE documents keyed by their "id" field as one unit.

        Raises on failure; documents from earlier commits stay written.
        """
        pass

    async def close(self):
        pass

    def _check_batch(self, docs: List[Dict[str, Any]], collection: Optional[str] = None):
        if len(docs) > self.MAX_BATCH_SIZE:
            raise ValueError(
                f"Batch of {len(docs)} documents for {collection} exceeds limit of {self.MAX_BATCH_SIZE}"
            )
