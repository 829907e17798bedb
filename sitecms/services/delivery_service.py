# sitecms/services/delivery_service.py
# Lectura pública: sólo páginas publicadas, sólo bloques renderizables.
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from sitecms.blocks import block_to_dict, renderable_blocks
from sitecms.core.errors import NotFoundError
from sitecms.db.session import run_after_commit
from sitecms.models.page import Page, PageVersion
from sitecms.services.delivery_cache import DeliveryCache
from sitecms.services.tenant_guard import get_tenant_by_slug
from sitecms.services.version_store import version_blocks

log = logging.getLogger(__name__)


def _iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    # precisión de segundos para que el ETag sea estable
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat()


def serialize_published_page(tenant_slug: str, page: Page, version: PageVersion) -> Dict[str, Any]:
    return {
        "tenant_slug": tenant_slug,
        "page_id": page.id,
        "slug": page.slug,
        "title": page.title,
        "status": page.status,
        "version_number": version.version_number,
        "blocks": [block_to_dict(b) for b in renderable_blocks(version_blocks(version))],
        "published_at": _iso(page.published_at),
        "updated_at": _iso(page.updated_at),
    }


def fetch_published_page(
    db: Session,
    tenant_slug: str,
    slug: str,
    *,
    cache: Optional[DeliveryCache] = None,
) -> Dict[str, Any]:
    """
    Devuelve la última versión de una página PUBLICADA. Draft, inexistente o de
    otro tenant → NotFoundError (404 en el API). El editor lee por otro camino.
    """
    tenant = get_tenant_by_slug(db, tenant_slug)
    slug = (slug or "").strip()

    if cache is not None:
        hit = cache.get(tenant.id, slug)
        if hit is not None:
            return hit

    page = db.scalar(
        select(Page).where(Page.tenant_id == tenant.id, Page.slug == slug, Page.status == "published")
    )
    if not page:
        raise NotFoundError("Page not found")

    version = db.scalar(
        select(PageVersion)
        .where(PageVersion.tenant_id == tenant.id, PageVersion.page_id == page.id)
        .order_by(PageVersion.version_number.desc())
        .limit(1)
    )
    if not version:
        # publicada sin contenido (sólo posible con PUBLISH_REQUIRES_CONTENT=False)
        raise NotFoundError("Page has no content")

    payload = serialize_published_page(tenant.slug, page, version)
    if cache is not None:
        cache.set(tenant.id, slug, payload)
    return payload


def cache_invalidator(cache: DeliveryCache, db: Optional[Session] = None):
    """
    Invalidator para VersionStore/publish: descarta la entrada (tenant, slug) de la página.

    Con `db`, la entrada se descarta tras el commit de committing(db): antes,
    un lector concurrente podría volver a cachear el estado viejo.
    """

    def _invalidate(page: Page) -> None:
        if db is None:
            cache.invalidate_page(page.tenant_id, page.slug)
        else:
            run_after_commit(db, cache.invalidate_page, page.tenant_id, page.slug)

    return _invalidate
