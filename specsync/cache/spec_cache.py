"""
In-memory specification cache with per-key synchronization.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..api_models import SpecificationRecord

logger = logging.getLogger(__name__)

RecordFactory = Callable[[], Awaitable[SpecificationRecord]]


class SpecificationCache:
    """
    Holds at most one live SpecificationRecord per function key.

    Concurrent ``get_or_create`` calls for the same key wait on that key's
    lock, so only the first one runs the factory and the rest receive its
    record. Different keys never block each other. A key's lock is dropped
    once no call is using or waiting on it.
    """

    def __init__(self):
        self._records: Dict[str, SpecificationRecord] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, function_key: str) -> bool:
        return function_key in self._records

    def _lock_for(self, function_key: str) -> asyncio.Lock:
        lock = self._locks.get(function_key)
        if lock is None:
            lock = self._locks[function_key] = asyncio.Lock()
        return lock

    def get(self, function_key: str, body_hash: Optional[str] = None) -> Optional[SpecificationRecord]:
        """
        Cached record for a key.

        When ``body_hash`` is given, a record produced from a different body
        counts as a miss.
        """
        record = self._records.get(function_key)
        if record is None:
            return None
        if body_hash is not None and record.body_hash != body_hash:
            return None
        return record

    def put(self, record: SpecificationRecord) -> None:
        """Store a record, replacing any previous one for its key"""
        self._records[record.function_key] = record

    def invalidate(self, function_key: str) -> bool:
        return self._records.pop(function_key, None) is not None

    def clear(self) -> None:
        self._records.clear()

    def keys(self) -> List[str]:
        return list(self._records)

    async def get_or_create(self, function_key: str, body_hash: Optional[str],
                            factory: RecordFactory) -> SpecificationRecord:
        """
        Return the cached record for an unchanged key, or build and store one.

        Args:
            function_key: "file:function" key
            body_hash: Hash of the body the record must have been built from
            factory: Coroutine function producing a new record on a miss

        Returns:
            The cached or newly created record
        """
        lock = self._lock_for(function_key)
        self._lock_users[function_key] = self._lock_users.get(function_key, 0) + 1
        try:
            async with lock:
                cached = self.get(function_key, body_hash)
                if cached is not None:
                    self.hits += 1
                    logger.debug("Cache hit for %s", function_key)
                    return cached

                self.misses += 1
                logger.debug("Cache miss for %s", function_key)
                record = await factory()
                self.put(record)
                return record
        finally:
            self._lock_users[function_key] -= 1
            if not self._lock_users[function_key]:
                del self._lock_users[function_key]
                self._locks.pop(function_key, None)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_entries": len(self._records),
            "cache_hits": self.hits,
            "cache_misses": self.misses
        }
