#  sitecms/api/delivery/router.py
from __future__ import annotations

import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from sitecms.api.deps import get_delivery_cache
from sitecms.core.settings import settings
from sitecms.db.session import get_db
from sitecms.models.tenant import Tenant
from sitecms.schemas.delivery import DeliveryPageOut, RevalidateIn, RevalidateOut
from sitecms.services.delivery_cache import DeliveryCache
from sitecms.services.delivery_service import fetch_published_page
from sitecms.services.publish_service import (
    apply_delivery_cache_headers,
    compute_etag_from_bytes,
    parse_httpdate,
)

log = logging.getLogger(__name__)

router = APIRouter(prefix="/delivery/v1", tags=["Delivery"])
# receptor del webhook (este servicio actuando como sitio público)
revalidate_router = APIRouter(tags=["Delivery"])


def _to_utc_seconds(dt: datetime | None) -> datetime | None:
    """
    Normaliza un datetime a UTC y sin microsegundos (precisión de segundos),
    adecuado para comparaciones con If-Modified-Since.
    """
    if not dt:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.replace(microsecond=0)


def _last_modified(payload: Dict[str, Any]) -> Optional[datetime]:
    """Máximo entre published_at y updated_at (ISO-8601 en el payload)."""
    last: Optional[datetime] = None
    for key in ("published_at", "updated_at"):
        raw = payload.get(key)
        if not raw:
            continue
        try:
            cand = _to_utc_seconds(datetime.fromisoformat(raw))
        except ValueError:
            continue
        if cand and (last is None or cand > last):
            last = cand
    return last


@router.get(
    "/tenants/{tenant_slug}/pages",
    response_model=DeliveryPageOut,
    summary="Obtener página publicada (público)",
)
def get_published_page(
    tenant_slug: str,
    slug: str = Query(..., min_length=1, description="Slug exacto de la página, p.ej. /about"),
    db: Session = Depends(get_db),
    cache: DeliveryCache = Depends(get_delivery_cache),
    if_none_match: str | None = Header(default=None, alias="If-None-Match"),
    if_modified_since: str | None = Header(default=None, alias="If-Modified-Since"),
):
    """
    Última versión de una página publicada, sólo con bloques renderizables.
    - Draft o inexistente → 404
    - ETag (If-None-Match → 304, prioridad sobre If-Modified-Since)
    - Last-Modified (If-Modified-Since → 304)
    """
    payload = fetch_published_page(db, tenant_slug, slug, cache=cache)

    # Serializamos para ETag estable
    body_bytes = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    etag = compute_etag_from_bytes(body_bytes)
    last_modified = _last_modified(payload)

    # 1) If-None-Match (prioridad)
    if if_none_match and etag and if_none_match == etag:
        resp = Response(status_code=304)
        apply_delivery_cache_headers(resp, etag=etag, last_modified=last_modified)
        return resp

    # 2) If-Modified-Since
    if if_modified_since and last_modified:
        ims = _to_utc_seconds(parse_httpdate(if_modified_since))
        if ims and last_modified <= ims:
            resp = Response(status_code=304)
            apply_delivery_cache_headers(resp, etag=etag, last_modified=last_modified)
            return resp

    # 200 con headers
    resp = Response(content=body_bytes, media_type="application/json")
    apply_delivery_cache_headers(resp, etag=etag, last_modified=last_modified)
    return resp


@revalidate_router.post("/api/revalidate", response_model=RevalidateOut)
def revalidate(
    payload: RevalidateIn,
    db: Session = Depends(get_db),
    cache: DeliveryCache = Depends(get_delivery_cache),
):
    """
    Invalida la caché de delivery. Con `tenantDomain` conocido sólo la del
    tenant; si no, toda.
    """
    if not hmac.compare_digest(payload.secret or "", settings.REVALIDATE_SECRET):
        raise HTTPException(status_code=401, detail="Invalid secret")

    domain = (payload.tenantDomain or "").strip()
    tenant = db.scalar(select(Tenant).where(Tenant.domain == domain)) if domain else None
    if tenant is not None:
        evicted = cache.invalidate_tenant(tenant.id)
        log.info("revalidate tenant=%s domain=%s evicted=%s", tenant.slug, domain, evicted)
        return RevalidateOut(revalidated=True, tenant_slug=tenant.slug, evicted=evicted)

    evicted = len(cache)
    cache.clear()
    log.info("revalidate all (domain=%r) evicted=%s", domain, evicted)
    return RevalidateOut(revalidated=True, evicted=evicted)
