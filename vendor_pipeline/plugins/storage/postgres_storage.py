import asyncio
import logging
import os
import re
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Dict, Any, Optional

from sqlalchemy import BigInteger, Column, DateTime, Identity, String, delete, select, text
from sqlalchemy.dialects.postgresql import JSONB, insert
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import declarative_base

from vendor_pipeline.interfaces.storage_interface import DocumentStoreInterface

logger = logging.getLogger(__name__)

Base = declarative_base()


class Document(Base):
    """One document of one collection, stored as a JSONB payload."""

    __tablename__ = "documents"

    collection = Column(String, primary_key=True)
    doc_id = Column(String, primary_key=True)
    # Insertion order; upserts keep the original value
    seq = Column(BigInteger, Identity(), nullable=False)
    data = Column(JSONB, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Document(collection='{self.collection}', doc_id='{self.doc_id}')>"


class PostgresDocumentStore(DocumentStoreInterface):
    """Document store on PostgreSQL using SQLAlchemy async and asyncpg."""

    def __init__(self, config: Dict[str, Any] = None):
        self.config = config or {}
        self.engine = None
        self.async_session_factory = None
        self._is_initialized = False
        self.lock = asyncio.Lock()

    @asynccontextmanager
    async def get_session(self):
        """Async session that commits on success and rolls back on error."""
        if not self.async_session_factory:
            raise ValueError("Database connection not initialized")

        session = self.async_session_factory()
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error(f"Session error, rolling back: {str(e)}")
            await session.rollback()
            raise
        finally:
            await session.close()

    async def initialize_db(self, connection_string: str):
        """Create the engine and the documents table, retrying with backoff."""
        if self._is_initialized:
            return

        self.engine = create_async_engine(
            connection_string,
            echo=False,
            pool_pre_ping=True,
            pool_size=self.config.get("pool_size", 5),
            max_overflow=2,
            pool_recycle=1800,
            pool_timeout=30,
        )

        max_retries = self.config.get("max_retries", 3)
        for attempt in range(max_retries):
            try:
                self.async_session_factory = async_sessionmaker(
                    self.engine, expire_on_commit=False, class_=AsyncSession
                )
                async with self.engine.begin() as conn:
                    await conn.execute(text("SELECT 1"))
                    await conn.run_sync(Base.metadata.create_all)

                self._is_initialized = True
                logger.info("Connected to PostgreSQL document store")
                break

            except Exception as e:
                retry_delay = (2**attempt) * 1.5
                if attempt < max_retries - 1:
                    logger.warning(
                        f"Database initialization attempt {attempt + 1} failed: {str(e)}. "
                        f"Retrying in {retry_delay} seconds..."
                    )
                    await asyncio.sleep(retry_delay)
                else:
                    logger.error(
                        f"Failed to initialize PostgreSQL after {max_retries} attempts: {e}"
                    )
                    raise

    def _get_connection_string(self) -> Optional[str]:
        """Get and format database connection string."""
        connection_string = self.config.get("connection_string") or os.environ.get(
            "DATABASE_URL"
        )
        if not connection_string:
            logger.error("No PostgreSQL connection string provided")
            return None

        log_string = connection_string
        if "@" in log_string:
            log_string = re.sub(r"://[^:]+:[^@]+@", "://***:***@", log_string)
        logger.debug(f"Attempting to connect with string: {log_string}")

        if connection_string.startswith("postgres://"):
            return connection_string.replace("postgres://", "postgresql+asyncpg://", 1)
        elif not connection_string.startswith("postgresql+asyncpg://"):
            return f"postgresql+asyncpg://{connection_string.split('://', 1)[1]}"
        return connection_string

    async def _ensure_initialized(self):
        async with self.lock:
            if self._is_initialized:
                return
            connection_string = self._get_connection_string()
            if not connection_string:
                raise ValueError("PostgreSQL connection string is not configured")
            await self.initialize_db(connection_string)

    def _upsert(self, collection: str, rows: List[Dict[str, Any]], merge: bool):
        stmt = insert(Document).values(
            [
                {"collection": collection, "doc_id": row["doc_id"], "data": row["data"]}
                for row in rows
            ]
        )
        # JSONB "||" is a shallow merge, matching set(..., merge=True)
        new_data = Document.data.op("||")(stmt.excluded.data) if merge else stmt.excluded.data
        return stmt.on_conflict_do_update(
            index_elements=["collection", "doc_id"],
            set_={"data": new_data, "updated_at": datetime.utcnow()},
        )

    def _select_collection(self, collection: str):
        return (
            select(Document.doc_id, Document.data)
            .where(Document.collection == collection)
            .order_by(Document.seq)
        )

    async def get(self, collection: str) -> List[Dict[str, Any]]:
        await self._ensure_initialized()
        async with self.get_session() as session:
            result = await session.execute(self._select_collection(collection))
            return [{**data, "id": doc_id} for doc_id, data in result.all()]

    async def add(self, collection: str, doc: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        await self.set(collection, doc_id, doc)
        return doc_id

    async def set(
        self, collection: str, doc_id: str, doc: Dict[str, Any], merge: bool = False
    ):
        await self._ensure_initialized()
        async with self.get_session() as session:
            await session.execute(
                self._upsert(collection, [{"doc_id": doc_id, "data": doc}], merge)
            )

    async def delete(self, collection: str, doc_id: str):
        await self._ensure_initialized()
        async with self.get_session() as session:
            await session.execute(
                delete(Document).where(
                    Document.collection == collection, Document.doc_id == doc_id
                )
            )

    async def commit_batch(
        self, collection: str, docs: List[Dict[str, Any]], merge: bool = False
    ):
        self._check_batch(docs, collection)
        if not docs:
            return
        await self._ensure_initialized()
        rows = [{"doc_id": str(doc["id"]), "data": doc} for doc in docs]
        async with self.get_session() as session:
            await session.execute(self._upsert(collection, rows, merge))
        logger.info(f"Committed {len(docs)} documents to {collection}")

    async def close(self):
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self._is_initialized = False
