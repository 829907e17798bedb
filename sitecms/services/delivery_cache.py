from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, Optional, Tuple

log = logging.getLogger(__name__)

# (tenant_id, page_slug)
CacheKey = Tuple[int, str]
# (expires_at, payload)
CacheValue = Tuple[float, Dict[str, Any]]


class DeliveryCache:
    """
    Caché en proceso para la lectura pública de páginas publicadas.
    Se invalida por página (append/restore/publish/unpublish/delete) o por
    tenant completo (endpoint de revalidación).
    """

    def __init__(self, ttl_seconds: float = 60) -> None:
        self.ttl_seconds = float(ttl_seconds)
        self._store: Dict[CacheKey, CacheValue] = {}
        self._lock = threading.Lock()

    def get(self, tenant_id: int, slug: str) -> Optional[Dict[str, Any]]:
        now = time.time()
        with self._lock:
            v = self._store.get((tenant_id, slug))
            if not v:
                return None
            # TTL expired → evict
            if v[0] < now:
                self._store.pop((tenant_id, slug), None)
                return None
            return v[1]

    def set(self, tenant_id: int, slug: str, payload: Dict[str, Any]) -> None:
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            self._store[(tenant_id, slug)] = (time.time() + self.ttl_seconds, payload)

    def invalidate_page(self, tenant_id: int, slug: str) -> None:
        with self._lock:
            self._store.pop((tenant_id, slug), None)
        log.debug("delivery cache invalidated tenant=%s slug=%s", tenant_id, slug)

    def invalidate_tenant(self, tenant_id: int) -> int:
        with self._lock:
            keys = [k for k in self._store if k[0] == tenant_id]
            for k in keys:
                self._store.pop(k, None)
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
