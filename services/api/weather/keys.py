"""
Cache key construction and city-name normalisation.

Key format:  {kind}:{city}[,{country}]:{units}

  ("current",  "  London ", "GB", None)     -> "current:london,gb:metric"
  ("forecast", "PARIS",     None, "imperial") -> "forecast:paris:imperial"

The same logical query always yields the same key regardless of the casing
or surrounding whitespace of the inputs.
"""

from __future__ import annotations

DEFAULT_UNITS = "metric"

KIND_CURRENT = "current"
KIND_FORECAST = "forecast"
_KINDS = {KIND_CURRENT, KIND_FORECAST}


def _normalise(value: str | None) -> str:
    return (value or "").strip().lower()


def build_cache_key(
    kind: str,
    city: str,
    country: str | None = None,
    units: str | None = None,
) -> str:
    """Build the cache key for a (kind, city, country, units) query."""
    if kind not in _KINDS:
        raise ValueError(f"Unknown cache key kind: {kind!r}")

    location = _normalise(city)
    country_norm = _normalise(country)
    if country_norm:
        location = f"{location},{country_norm}"

    return f"{kind}:{location}:{_normalise(units) or DEFAULT_UNITS}"


def build_query(city: str, country: str | None = None) -> str:
    """OpenWeatherMap ``q`` parameter: 'city' or 'city,country'."""
    city = city.strip()
    country = (country or "").strip()
    return f"{city},{country}" if country else city


def display_name(city: str) -> str:
    """Canonical display form of a city name.

    '  new   york ' -> 'New York'
    'PARIS'         -> 'Paris'
    """
    return " ".join(word.capitalize() for word in city.split())
