"""
City popularity tracking.

Every weather lookup touches the city's record:
  - lastSearchedAt is refreshed on every lookup, cached or not
  - searchCount grows only when the upstream provider was actually consulted,
    so a burst of cache hits cannot inflate a city's rank

Best-effort: storage failures are logged and swallowed. Tracking never
blocks or fails the weather lookup it rides along with.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable

from services.api.cities.store import CityRecord, CityStore
from services.api.weather.keys import display_name

logger = logging.getLogger(__name__)


class PopularityTracker:
    def __init__(self, store: CityStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock

    async def record(
        self,
        city_name: str,
        country: str | None = None,
        is_cache_hit: bool = False,
        state: str | None = None,
    ) -> CityRecord | None:
        """
        Record one lookup of city_name.

        Args:
            city_name:    City as the caller typed it; stored in display form.
            country:      Country filter from the request, used as the state
                          when the payload did not provide one.
            is_cache_hit: True when the answer came from cache (no count bump).
            state:        Country/state inferred from the upstream payload.

        Returns the updated record, or None if the write failed.
        """
        name = display_name(city_name)
        if not name:
            return None

        inferred_state = state or ((country or "").strip().upper() or None)
        searched_at = datetime.fromtimestamp(self._clock(), tz=timezone.utc)

        try:
            return await self._store.upsert_city(
                name,
                inferred_state,
                increment=0 if is_cache_hit else 1,
                searched_at=searched_at,
            )
        except Exception:
            logger.warning("City search tracking failed for %r", name, exc_info=True)
            return None
