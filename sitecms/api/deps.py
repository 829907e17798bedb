# sitecms/api/deps.py
# Dependencias compartidas por los routers (caché de delivery, VersionStore, transacción)
from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from sitecms.db.session import committing, get_db  # noqa: F401  (committing lo usan los routers)
from sitecms.services.delivery_cache import DeliveryCache
from sitecms.services.delivery_service import cache_invalidator
from sitecms.services.version_store import VersionStore


def get_delivery_cache(request: Request) -> DeliveryCache:
    return request.app.state.delivery_cache


def get_version_store(
    db: Session = Depends(get_db),
    cache: DeliveryCache = Depends(get_delivery_cache),
) -> VersionStore:
    # la invalidación espera al commit de committing(db)
    return VersionStore(db, invalidator=cache_invalidator(cache, db))
