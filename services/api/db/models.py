"""
SQLAlchemy DeclarativeBase models for city popularity tracking.

Column names use camelCase to match the JSON the API returns
(searchCount, lastSearchedAt), so rows serialise without renaming.

nameKey is the lower-cased, whitespace-collapsed city name. It carries the
unique constraint that INSERT ... ON CONFLICT targets, which is what makes
upserts atomic under concurrent lookups of the same city.
"""

import uuid as _uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class City(Base):
    """One row per searched or registered city. Never deleted by the weather layer."""

    __tablename__ = "cities"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(_uuid.uuid4()))
    name: Mapped[str] = mapped_column(String)
    nameKey: Mapped[str] = mapped_column(String, unique=True, index=True)
    state: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    searchCount: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    lastSearchedAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    createdAt: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
