"""
Kill-count cache.

Counts come from two places that lag each other: the chat message printed
on a kill ("Your Vorkath kill count is: 120.") and the loot event that
follows it. The cache reconciles them:

    - a chat count is merged with max(), never moving a count backwards
    - a loot event increments the cached count, falling back to an external
      CountStore when nothing is cached yet

Entries expire after an idle period and the least recently used entry is
evicted first once the cache is full.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from drop_relay.ingestion.aliases import (
    CG_BOSS,
    CG_NAME,
    GAUNTLET_BOSS,
    GAUNTLET_NAME,
    canonical_name,
)

logger = logging.getLogger(__name__)


class LootSourceType(str, Enum):
    """Kind of loot source, which namespaces cache keys."""
    NPC = "NPC"
    PLAYER = "PLAYER"
    PICKPOCKET = "PICKPOCKET"
    EVENT = "EVENT"
    UNKNOWN = "UNKNOWN"


class CountStore(Protocol):
    """External source of persisted counts (loot tracker, chat commands)."""

    def stored_count(self, subject: str, source_type: LootSourceType) -> Optional[int]: ...


@dataclass
class CacheConfig:
    """Configuration for the kill-count cache."""

    ttl_seconds: float = 600  # 10 minutes idle
    max_entries: int = 64


def cache_key(subject: str, source_type: LootSourceType = LootSourceType.UNKNOWN) -> str:
    """
    Key under which a subject's count is cached.

    Player and pickpocket sources are namespaced so that an NPC and a
    player sharing a name never share a count. Everything else goes
    through the boss alias table, with both gauntlet names folded onto
    the boss that is actually fought.
    """
    if source_type == LootSourceType.PICKPOCKET:
        return f"pickpocket_{subject}"
    if source_type == LootSourceType.PLAYER:
        return f"player_{subject}"

    name = canonical_name(subject) or subject
    if name == GAUNTLET_NAME:
        return GAUNTLET_BOSS
    if name == CG_NAME:
        return CG_BOSS
    return name


@dataclass
class _Entry:
    count: int
    last_access: float


class KillCountCache:
    """
    Thread-safe bounded cache of subject -> count.

    Usage:
        cache = KillCountCache(CacheConfig(ttl_seconds=600, max_entries=64))
        cache.merge_max("Vorkath", 119)   # chat said 120; loot will add one
        cache.increment("Vorkath")        # loot arrived -> 120
        cache.get("vork")                 # 120
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        store: Optional[CountStore] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            config: Size and expiry bounds
            store: Optional external store consulted on increment misses
            clock: Monotonic clock in seconds (injectable for tests)
        """
        self._config = config or CacheConfig()
        self._store = store
        self._clock = clock
        self._entries: "OrderedDict[str, _Entry]" = OrderedDict()
        self._lock = threading.Lock()

    def get(
        self,
        subject: str,
        source_type: LootSourceType = LootSourceType.UNKNOWN,
    ) -> Optional[int]:
        """Cached count for a subject, or None if absent or expired."""
        key = cache_key(subject, source_type)
        with self._lock:
            entry = self._touch(key)
            return entry.count if entry else None

    def get_with_store(
        self,
        subject: str,
        source_type: LootSourceType = LootSourceType.UNKNOWN,
    ) -> Optional[int]:
        """
        Cached count merged with the external store's value.

        The store's value only wins when it is higher.
        """
        stored = self._stored_count(subject, source_type)
        if stored is None:
            return self.get(subject, source_type)
        return self.merge_max(subject, stored, source_type)

    def increment(
        self,
        subject: str,
        source_type: LootSourceType = LootSourceType.UNKNOWN,
    ) -> Optional[int]:
        """
        Count one more kill.

        If nothing is cached the external store is consulted and its value
        plus one is cached. With no store value the cache stays empty.

        Returns:
            The new count, or None if the count is unknown
        """
        key = cache_key(subject, source_type)
        with self._lock:
            entry = self._touch(key)
            if entry is not None:
                entry.count += 1
                return entry.count

        stored = self._stored_count(subject, source_type)
        if stored is None:
            logger.debug(f"No known count for {key}, skipping increment")
            return None

        with self._lock:
            # A chat count may have landed while the store was consulted
            entry = self._touch(key)
            if entry is not None:
                entry.count += 1
                return entry.count
            self._insert(key, stored + 1)
            return stored + 1

    def merge_max(
        self,
        subject: str,
        observed: int,
        source_type: LootSourceType = LootSourceType.UNKNOWN,
    ) -> int:
        """
        Merge an externally observed count, keeping the larger value.

        Returns:
            The count now cached
        """
        key = cache_key(subject, source_type)
        with self._lock:
            entry = self._touch(key)
            if entry is None:
                self._insert(key, observed)
                return observed
            if observed > entry.count:
                entry.count = observed
            return entry.count

    def put(
        self,
        subject: str,
        count: int,
        source_type: LootSourceType = LootSourceType.UNKNOWN,
    ) -> None:
        """Overwrite a count (clue scroll totals are exact)."""
        key = cache_key(subject, source_type)
        with self._lock:
            entry = self._touch(key)
            if entry is None:
                self._insert(key, count)
            else:
                entry.count = count

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.debug("Kill-count cache cleared")

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._entries)

    def __contains__(self, subject: object) -> bool:
        if not isinstance(subject, str):
            return False
        return self.get(subject) is not None

    # =========================================================================
    # Internals (caller holds the lock)
    # =========================================================================

    def _touch(self, key: str) -> Optional[_Entry]:
        self._purge_expired()
        entry = self._entries.get(key)
        if entry is None:
            return None
        entry.last_access = self._clock()
        self._entries.move_to_end(key)
        return entry

    def _insert(self, key: str, count: int) -> None:
        self._entries[key] = _Entry(count=count, last_access=self._clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self._config.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted {evicted} from kill-count cache")

    def _purge_expired(self) -> None:
        cutoff = self._clock() - self._config.ttl_seconds
        # Entries are kept in access order, so expired ones are at the front
        while self._entries:
            key, entry = next(iter(self._entries.items()))
            if entry.last_access > cutoff:
                break
            del self._entries[key]

    def _stored_count(self, subject: str, source_type: LootSourceType) -> Optional[int]:
        if self._store is None:
            return None
        try:
            return self._store.stored_count(subject, source_type)
        except Exception as e:
            logger.warning(f"Count store lookup failed for {subject}: {e}")
            return None
