"""Repository layer for persisted collections.

A collection is the append-only list of approved records of one bucket.
Stores expose the whole collection: ``load`` never fails (a missing or
corrupt store reads as empty) and ``save`` replaces it, raising
``StoreWriteError`` when the write does not go through.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ketogo.core.errors import StoreWriteError
from ketogo.core.logging import get_logger
from ketogo.core.models import ApprovedEntryRow
from ketogo.core.time import parse_timestamp

logger = get_logger(__name__)

Record = Dict[str, Any]


class CollectionStore(ABC):
    """Abstract store for one collection."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def load(self) -> List[Record]:
        """Full collection history, newest first; empty when absent or unreadable."""

    @abstractmethod
    async def save(self, records: List[Record]) -> None:
        """Persist the full collection."""


class InMemoryStore(CollectionStore):
    """Store kept in a list; used for dry runs and tests."""

    def __init__(self, name: str, records: Optional[List[Record]] = None):
        super().__init__(name)
        self.records: List[Record] = [dict(r) for r in records or []]
        self.save_count = 0

    async def load(self) -> List[Record]:
        return [dict(r) for r in self.records]

    async def save(self, records: List[Record]) -> None:
        self.records = [dict(r) for r in records]
        self.save_count += 1


class JSONFileStore(CollectionStore):
    """Collection persisted as one pretty-printed JSON array."""

    def __init__(self, name: str, path: os.PathLike):
        super().__init__(name)
        self.path = Path(path)

    async def load(self) -> List[Record]:
        if not self.path.exists():
            logger.info(f"No existing {self.name} file at {self.path}, starting empty")
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read {self.path}, treating {self.name} as empty: {e}")
            return []

        if not isinstance(data, list):
            logger.warning(f"{self.path} does not hold a JSON array, treating {self.name} as empty")
            return []

        records = [item for item in data if isinstance(item, dict)]
        if len(records) != len(data):
            logger.warning(f"Ignored {len(data) - len(records)} non-object entries in {self.path}")
        return records

    async def save(self, records: List[Record]) -> None:
        """Write through a temp file and rename, so readers never see a partial file."""
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2, ensure_ascii=False)
                f.write("\n")
            os.replace(tmp_name, self.path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StoreWriteError(f"Failed to write {self.name} to {self.path}: {e}") from e

        logger.debug(f"Wrote {len(records)} {self.name} records to {self.path}")


class SQLCollectionStore(CollectionStore):
    """
    Collection backed by the ``approved_entries`` table.

    Rows are only ever inserted: ``save`` adds the records whose fingerprint
    is not in the table yet and leaves existing rows alone.
    """

    def __init__(self, name: str, session_factory: async_sessionmaker):
        super().__init__(name)
        self.session_factory = session_factory

    async def load(self) -> List[Record]:
        stmt = (
            select(ApprovedEntryRow.payload)
            .where(ApprovedEntryRow.collection == self.name)
            .order_by(ApprovedEntryRow.published_at.desc(), ApprovedEntryRow.id)
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return [dict(payload) for payload in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.warning(f"Could not load {self.name} from database, treating as empty: {e}")
            return []

    async def save(self, records: List[Record]) -> None:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(ApprovedEntryRow.fingerprint).where(ApprovedEntryRow.collection == self.name)
                )
                known = set(result.scalars().all())

                inserted = 0
                for record in records:
                    fp = record.get("fingerprint")
                    if not fp or fp in known:
                        continue
                    session.add(ApprovedEntryRow(
                        collection=self.name,
                        fingerprint=fp,
                        published_at=parse_timestamp(record.get("published_at")),
                        week=record.get("week"),
                        payload=record,
                    ))
                    known.add(fp)
                    inserted += 1

                await session.commit()
        except SQLAlchemyError as e:
            raise StoreWriteError(f"Failed to write {self.name} to database: {e}") from e

        logger.debug(f"Inserted {inserted} {self.name} rows")


def build_store(name: str, settings) -> CollectionStore:
    """Store for a collection according to ``settings.store_backend``."""
    if settings.store_backend == "sql":
        from ketogo.core.db import get_sessionmaker
        return SQLCollectionStore(name, get_sessionmaker())

    path = settings.observations_path if name == "observations" else settings.objects_path
    return JSONFileStore(name, path)
