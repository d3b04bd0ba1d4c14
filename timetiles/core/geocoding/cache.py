"""Persistent location cache keyed by normalized address.

Every cache operation degrades gracefully: if the store is unavailable the
failure is logged and the cache behaves as a miss (or a no-op write).
"""

import logging
import re
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from timetiles.core.geocoding.metrics import GEOCODING_CACHE
from timetiles.core.geocoding.models import GeocodeComponents, GeocodeResult
from timetiles.core.store import DataStore, to_timestamp, utc_now

logger = logging.getLogger(__name__)

LOCATION_CACHE_COLLECTION = "location-cache"

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_address(address: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    stripped = _PUNCTUATION_RE.sub("", address.lower())
    return _WHITESPACE_RE.sub(" ", stripped).strip()


class LocationCache:
    """Location cache backed by a ``DataStore`` collection.

    Args:
        store: Data store holding the cache collection
        stale_days: Age after which unpopular entries may be removed
        min_hits: Entries with at least this many hits are kept regardless of age
        clock: Returns the current aware datetime
    """

    def __init__(
        self,
        store: DataStore,
        stale_days: int = 90,
        min_hits: int = 3,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.stale_days = stale_days
        self.min_hits = min_hits
        self.clock = clock

    async def _find(self, normalized: str) -> dict[str, Any] | None:
        docs = await self.store.find(
            LOCATION_CACHE_COLLECTION,
            {"normalized_address": normalized},
            limit=1,
        )
        return docs[0] if docs else None

    async def get(self, address: str) -> GeocodeResult | None:
        """Look up an address, refreshing hit statistics on a hit."""
        normalized = normalize_address(address)
        try:
            doc = await self._find(normalized)
        except Exception as e:
            GEOCODING_CACHE.labels(result="error").inc()
            logger.warning(f"Cache lookup failed for {address!r}: {e}")
            return None

        if doc is None:
            GEOCODING_CACHE.labels(result="miss").inc()
            return None

        try:
            result = GeocodeResult(
                latitude=doc["latitude"],
                longitude=doc["longitude"],
                confidence=doc.get("confidence", 0.0),
                provider=doc.get("provider", "cache"),
                normalized_address=doc.get("formatted_address") or normalized,
                components=GeocodeComponents(**(doc.get("components") or {})),
                metadata=doc.get("metadata") or {},
                from_cache=True,
            )
        except Exception as e:
            GEOCODING_CACHE.labels(result="error").inc()
            logger.warning(f"Ignoring unreadable cache entry for {normalized!r}: {e}")
            return None

        GEOCODING_CACHE.labels(result="hit").inc()
        logger.debug(f"Cache hit for {normalized!r}")
        try:
            # Read-modify-write; concurrent hits may under-count
            await self.store.update(
                LOCATION_CACHE_COLLECTION,
                doc["id"],
                {
                    "hit_count": int(doc.get("hit_count") or 0) + 1,
                    "last_used": to_timestamp(self.clock()),
                },
            )
        except Exception as e:
            logger.warning(f"Failed to update cache hit for {normalized!r}: {e}")
        return result

    async def put(self, address: str, result: GeocodeResult) -> None:
        """Store a result. A second write for the same address wins."""
        normalized = normalize_address(address)
        data = {
            "address": address,
            "normalized_address": normalized,
            "formatted_address": result.normalized_address,
            "latitude": result.latitude,
            "longitude": result.longitude,
            "provider": result.provider,
            "confidence": result.confidence,
            "last_used": to_timestamp(self.clock()),
            "components": result.components.model_dump(),
            "metadata": result.metadata,
        }
        try:
            existing = await self._find(normalized)
            if existing is None:
                await self.store.create(
                    LOCATION_CACHE_COLLECTION, {**data, "hit_count": 1}
                )
            else:
                await self.store.update(LOCATION_CACHE_COLLECTION, existing["id"], data)
        except Exception as e:
            logger.warning(f"Failed to cache geocoding result for {address!r}: {e}")

    async def cleanup(self) -> int:
        """Delete stale, unpopular entries and return how many were removed."""
        cutoff = self.clock() - timedelta(days=self.stale_days)
        try:
            deleted = await self.store.delete(
                LOCATION_CACHE_COLLECTION,
                {
                    "and": [
                        {"hit_count": {"less_than": self.min_hits}},
                        {"last_used": {"less_than": to_timestamp(cutoff)}},
                    ]
                },
            )
        except Exception as e:
            logger.warning(f"Cache cleanup failed: {e}")
            return 0
        logger.info(f"Removed {deleted} stale location cache entries")
        return deleted

    async def clear(self) -> int:
        try:
            return await self.store.delete(LOCATION_CACHE_COLLECTION, {"id": {"exists": True}})
        except Exception as e:
            logger.warning(f"Cache clear failed: {e}")
            return 0
