"""
City storage — the persistence collaborator behind popularity tracking
and city suggestions.

Contract (CityStore):
  find_city_by_name(name)                      case-insensitive exact match
  upsert_city(name, state, increment, searched_at)
                                               atomic create-if-absent /
                                               update-if-present
  search_cities(query, limit)                  prefix or substring match
  list_by_popularity(limit)                    searchCount desc, name asc
  list_by_recency(limit)                       lastSearchedAt desc, unsearched last

Ordering for search_cities: searchCount desc, then name asc.

Implementations:
  InMemoryCityStore   process-local, for tests and single-process dev
  SqlCityStore        SQLAlchemy async sessions, INSERT ... ON CONFLICT
"""

from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import async_sessionmaker

from services.api.db.models import City


def name_key(name: str) -> str:
    """Lookup key for a city name: whitespace collapsed, lower-cased."""
    return " ".join(name.split()).lower()


@dataclass(frozen=True)
class CityRecord:
    name: str
    state: str | None = None
    search_count: int = 0
    last_searched_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state,
            "searchCount": self.search_count,
            "lastSearchedAt": self.last_searched_at.isoformat() if self.last_searched_at else None,
        }


class CityStore(ABC):
    @abstractmethod
    async def find_city_by_name(self, name: str) -> CityRecord | None: ...

    @abstractmethod
    async def upsert_city(
        self,
        name: str,
        state: str | None = None,
        *,
        increment: int = 0,
        searched_at: datetime | None = None,
    ) -> CityRecord:
        """
        Create the city if absent, otherwise update it in place.

        A new record starts with searchCount = increment. On update,
        searchCount grows by increment, lastSearchedAt is replaced when
        searched_at is given, and state only when a non-empty one is given.
        """

    @abstractmethod
    async def search_cities(self, query: str, limit: int = 10) -> list[CityRecord]: ...

    @abstractmethod
    async def list_by_popularity(self, limit: int = 10) -> list[CityRecord]: ...

    @abstractmethod
    async def list_by_recency(self, limit: int = 10) -> list[CityRecord]: ...


def _popularity_order(record: CityRecord) -> tuple:
    return (-record.search_count, record.name)


class InMemoryCityStore(CityStore):
    """Dict-backed store. The lock serialises read-modify-write upserts."""

    def __init__(self) -> None:
        self._records: dict[str, CityRecord] = {}
        self._lock = asyncio.Lock()

    async def find_city_by_name(self, name: str) -> CityRecord | None:
        return self._records.get(name_key(name))

    async def upsert_city(self, name, state=None, *, increment=0, searched_at=None):
        key = name_key(name)
        async with self._lock:
            existing = self._records.get(key)
            if existing is None:
                record = CityRecord(
                    name=" ".join(name.split()),
                    state=state or None,
                    search_count=increment,
                    last_searched_at=searched_at,
                )
            else:
                record = replace(
                    existing,
                    state=state or existing.state,
                    search_count=existing.search_count + increment,
                    last_searched_at=searched_at or existing.last_searched_at,
                )
            self._records[key] = record
            return record

    async def search_cities(self, query, limit=10):
        needle = name_key(query)
        matches = [r for k, r in self._records.items() if needle in k]
        return sorted(matches, key=_popularity_order)[:limit]

    async def list_by_popularity(self, limit=10):
        return sorted(self._records.values(), key=_popularity_order)[:limit]

    async def list_by_recency(self, limit=10):
        searched = [r for r in self._records.values() if r.last_searched_at is not None]
        never = [r for r in self._records.values() if r.last_searched_at is None]
        searched.sort(key=lambda r: r.last_searched_at, reverse=True)
        return (searched + sorted(never, key=lambda r: r.name))[:limit]


def _to_record(row: City) -> CityRecord:
    return CityRecord(
        name=row.name,
        state=row.state,
        search_count=row.searchCount or 0,
        last_searched_at=row.lastSearchedAt,
    )


class SqlCityStore(CityStore):
    """
    SQLAlchemy-backed store.

    Usage:
        factory = async_sessionmaker(engine, expire_on_commit=False)
        store = SqlCityStore(factory, dialect=engine.dialect.name)
    """

    def __init__(self, session_factory: async_sessionmaker, dialect: str = "postgresql") -> None:
        if dialect not in ("postgresql", "sqlite"):
            raise ValueError(f"Unsupported dialect for city upserts: {dialect!r}")
        self._session_factory = session_factory
        self._insert = pg_insert if dialect == "postgresql" else sqlite_insert

    async def find_city_by_name(self, name):
        async with self._session_factory() as session:
            result = await session.execute(select(City).where(City.nameKey == name_key(name)))
            row = result.scalars().first()
        return _to_record(row) if row is not None else None

    async def upsert_city(self, name, state=None, *, increment=0, searched_at=None):
        stmt = self._insert(City).values(
            id=str(uuid.uuid4()),
            name=" ".join(name.split()),
            nameKey=name_key(name),
            state=state or None,
            searchCount=increment,
            lastSearchedAt=searched_at,
        )
        updates: dict[str, Any] = {"searchCount": City.searchCount + increment}
        if searched_at is not None:
            updates["lastSearchedAt"] = stmt.excluded.lastSearchedAt
        if state:
            updates["state"] = stmt.excluded.state
        stmt = stmt.on_conflict_do_update(index_elements=[City.nameKey], set_=updates).returning(City)

        async with self._session_factory() as session:
            result = await session.execute(stmt, execution_options={"populate_existing": True})
            record = _to_record(result.scalars().first())
            await session.commit()
        return record

    async def search_cities(self, query, limit=10):
        stmt = (
            select(City)
            .where(City.nameKey.contains(name_key(query), autoescape=True))
            .order_by(City.searchCount.desc(), City.name.asc())
            .limit(limit)
        )
        return await self._fetch(stmt)

    async def list_by_popularity(self, limit=10):
        stmt = select(City).order_by(City.searchCount.desc(), City.name.asc()).limit(limit)
        return await self._fetch(stmt)

    async def list_by_recency(self, limit=10):
        stmt = (
            select(City)
            .order_by(City.lastSearchedAt.desc().nulls_last(), City.name.asc())
            .limit(limit)
        )
        return await self._fetch(stmt)

    async def _fetch(self, stmt) -> list[CityRecord]:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_record(row) for row in result.scalars().all()]
