"""Thread-safe cache of resolved permissions, keyed by principal and (schema, table, view)."""
import threading
import time
import logging
from collections import OrderedDict
from typing import Callable, Dict, Optional, Tuple

from dbconsole.config.settings import settings
from dbconsole.modules.permissions.schemas import DetailedPermissions, RequestedTarget

logger = logging.getLogger(__name__)

CacheKey = Tuple[int, Optional[str], Optional[str], Optional[str]]


def cache_key(principal_id: int, target: RequestedTarget) -> CacheKey:
    return (principal_id,) + target.cache_key


class PermissionCache:
    """
    TTL cache for DetailedPermissions.

    Lookups use the fine (principal, schema, table, view) key, but invalidation
    always drops every entry of a principal: a global or schema-wide grant change
    can change the answer for unrelated object-level targets.

    Each invalidation also bumps the principal's generation. A reader captures
    the generation before loading from the database and passes it to `set`, so an
    answer resolved from rows read before an invalidation is never stored.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic
    ):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[CacheKey, Tuple[DetailedPermissions, float]]" = OrderedDict()
        self._generations: Dict[int, int] = {}

    def generation(self, principal_id: int) -> int:
        with self._lock:
            return self._generations.get(principal_id, 0)

    def get(self, principal_id: int, target: RequestedTarget) -> Optional[DetailedPermissions]:
        key = cache_key(principal_id, target)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            permissions, expiry = entry
            if self._clock() >= expiry:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return permissions

    def set(
        self,
        principal_id: int,
        target: RequestedTarget,
        permissions: DetailedPermissions,
        generation: Optional[int] = None
    ) -> bool:
        """Store an answer unless the principal was invalidated since `generation` was read"""
        key = cache_key(principal_id, target)
        with self._lock:
            if generation is not None and generation != self._generations.get(principal_id, 0):
                logger.debug(f"Discarding stale permissions for principal {principal_id}")
                return False
            self._entries[key] = (permissions, self._clock() + self.ttl_seconds)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)
            return True

    def invalidate_principal(self, principal_id: int) -> int:
        """Drop every cached answer for `principal_id`. Returns the number of entries removed."""
        with self._lock:
            self._generations[principal_id] = self._generations.get(principal_id, 0) + 1
            stale = [key for key in self._entries if key[0] == principal_id]
            for key in stale:
                del self._entries[key]
        logger.debug(f"Invalidated {len(stale)} cached permission entries for principal {principal_id}")
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


permission_cache = PermissionCache(
    ttl_seconds=settings.permissions_cache_ttl_sec,
    max_size=settings.permissions_cache_max_size,
)
