"""
City storage package.

Persists searched cities with their popularity counters so suggestions can
be ranked by how often each city was actually looked up.
"""

from services.api.cities.store import (
    CityRecord,
    CityStore,
    InMemoryCityStore,
    SqlCityStore,
)

__all__ = ["CityRecord", "CityStore", "InMemoryCityStore", "SqlCityStore"]
