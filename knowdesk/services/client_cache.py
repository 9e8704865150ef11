"""Per-tenant cache of provider clients with a time-to-live."""

import threading
import time
from typing import Callable, Generic, TypeVar

from knowdesk.utils.logging_config import logger

T = TypeVar("T")


class TenantClientCache(Generic[T]):
    """
    Caches one client per tenant for `ttl_seconds`.

    Entries are rebuilt by the factory passed to `get` once expired, and can
    be dropped early with `invalidate` when a tenant's credentials change.
    """

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: dict[str, tuple[T, float]] = {}
        self._lock = threading.Lock()

    def get(self, tenant_id: str, factory: Callable[[], T]) -> T:
        key = str(tenant_id)
        now = self.clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and now < entry[1]:
                return entry[0]
            client = factory()
            self._entries[key] = (client, now + self.ttl_seconds)
        logger.info(f"Created provider client for tenant {key}")
        return client

    def invalidate(self, tenant_id: str) -> None:
        with self._lock:
            self._entries.pop(str(tenant_id), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
