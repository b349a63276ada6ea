"""
SQLAlchemy integration — durable record store over one `records` table.

Usage:
    1. Create the schema and a session factory:

        session_factory, engine = await create_database("sqlite+aiosqlite:///exactly.db")

    2. Create one store per collection, with a codec for its value type:

        ledger_store = SQLAlchemyStore(session_factory, "ledger", RECORD_CODEC)
        contents = SQLAlchemyStore(session_factory, "contents", DOCUMENT_CODEC)

    3. Use it anywhere a RecordStore is expected:

        ledger = DedupLedger(ledger_store)
"""

import json
from datetime import datetime
from typing import Any, cast

from sqlalchemy import DateTime, Integer, String, Text, insert, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from kungfu import Result, Ok, Error

from exactly._types import utc_now
from exactly.store._types import Codec, StoreError, Txn


# ═══════════════════════════════════════════════════════════════════════════════
# Schema
# ═══════════════════════════════════════════════════════════════════════════════


class Base(DeclarativeBase):
    pass


class RecordTable(Base):
    """
    One row per (collection, key).

    Note: version is bumped on every write and guards updates, so two
    transactions that read the same row can never both commit a write.
    """

    __tablename__ = "records"

    collection: Mapped[str] = mapped_column(String(100), primary_key=True)
    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    document: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class _VersionConflict(Exception):
    """Row changed between read and write."""


# ═══════════════════════════════════════════════════════════════════════════════
# Store
# ═══════════════════════════════════════════════════════════════════════════════


class SQLAlchemyStore[V]:
    """
    RecordStore backed by an async SQLAlchemy session factory.

    transact() runs inside a single session transaction:
    SELECT ... FOR UPDATE → fn → INSERT, or UPDATE guarded by version.
    A concurrent insert (IntegrityError) or a version mismatch rolls the
    transaction back and is reported as StoreError — the caller retries.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        collection: str,
        codec: Codec[V],
    ) -> None:
        """
        Args:
            session_factory: SQLAlchemy async session factory
            collection: Namespace of keys inside the records table
            codec: Value ⇄ JSON document conversion
        """
        self._session_factory = session_factory
        self._collection = collection
        self._codec = codec

    @property
    def collection(self) -> str:
        return self._collection

    async def get(self, key: str) -> Result[V | None, StoreError]:
        """Get value by key."""
        try:
            async with self._session_factory() as session:
                stmt = select(RecordTable.document).where(
                    RecordTable.collection == self._collection,
                    RecordTable.key == key,
                )
                document = (await session.execute(stmt)).scalar_one_or_none()
                if document is None:
                    return Ok(None)
                return Ok(self._decode(document))

        except SQLAlchemyError as e:
            return Error(StoreError(f"Failed to get {key}: {e}", e))

    async def transact[R](self, key: str, fn: Txn[V, R]) -> Result[R, StoreError]:
        """Read, decide and write one key in one transaction."""
        try:
            async with self._session_factory() as session, session.begin():
                stmt = (
                    select(RecordTable.document, RecordTable.version)
                    .where(
                        RecordTable.collection == self._collection,
                        RecordTable.key == key,
                    )
                    .with_for_update()
                )
                row = (await session.execute(stmt)).one_or_none()
                current = self._decode(row.document) if row is not None else None

                commit = fn(current)

                if commit.write is not None:
                    document = json.dumps(self._codec.encode(commit.write))
                    if row is None:
                        await session.execute(
                            insert(RecordTable).values(
                                collection=self._collection,
                                key=key,
                                document=document,
                                version=1,
                                updated_at=utc_now(),
                            )
                        )
                    else:
                        cursor = cast(
                            CursorResult[Any],
                            await session.execute(
                                update(RecordTable)
                                .where(
                                    RecordTable.collection == self._collection,
                                    RecordTable.key == key,
                                    RecordTable.version == row.version,
                                )
                                .values(
                                    document=document,
                                    version=row.version + 1,
                                    updated_at=utc_now(),
                                )
                            ),
                        )
                        if cursor.rowcount != 1:
                            raise _VersionConflict(key)

                return Ok(commit.returns)

        except (IntegrityError, _VersionConflict) as e:
            return Error(StoreError(f"Transaction conflict on {key}", e))
        except SQLAlchemyError as e:
            return Error(StoreError(f"Transaction failed on {key}: {e}", e))

    def _decode(self, document: str) -> V:
        return self._codec.decode(json.loads(document))


# ═══════════════════════════════════════════════════════════════════════════════
# Database Setup
# ═══════════════════════════════════════════════════════════════════════════════


async def create_database(
    url: str = "sqlite+aiosqlite:///:memory:",
) -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Create schema and return (session_factory, engine)."""
    engine = create_async_engine(url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, expire_on_commit=False), engine


__all__ = (
    "Base",
    "RecordTable",
    "SQLAlchemyStore",
    "create_database",
)
