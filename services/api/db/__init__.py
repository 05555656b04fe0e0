"""
SQLAlchemy async database module.

Re-exports the engine factory and the City model backing SqlCityStore.
"""

from services.api.db.engine import create_engine, create_schema
from services.api.db.models import Base, City

__all__ = [
    "create_engine",
    "create_schema",
    "Base",
    "City",
]
