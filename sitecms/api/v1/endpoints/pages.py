# =============================================================================
# Page Endpoints (CRUD, Versions, Publish/Unpublish, Clone)
# sitecms/api/v1/endpoints/pages.py
# =============================================================================
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response
from sqlalchemy.orm import Session

from sitecms.api.deps import committing, get_delivery_cache, get_version_store
from sitecms.db.session import get_db
from sitecms.models.page import Page
from sitecms.schemas.page import (
    CloneIn, PageCreate, PageOut, PageUpdate, PageWithContentOut,
    PublishIn, TenantScoped, VersionAppend, VersionOut,
)
from sitecms.services import page_service, revalidation_service
from sitecms.services.delivery_cache import DeliveryCache
from sitecms.services.delivery_service import cache_invalidator
from sitecms.services.publish_service import apply_cache_headers, publish, set_draft
from sitecms.services.tenant_guard import get_page_for_tenant
from sitecms.services.version_store import VersionStore

router = APIRouter(prefix="/pages", tags=["pages"])


def _with_content(store: VersionStore, page: Page) -> PageWithContentOut:
    out = PageWithContentOut.model_validate(page)
    latest = store.latest(page.id, page.tenant_id)
    out.latest_version = VersionOut.model_validate(latest) if latest else None
    return out


# ---------- Pages ----------
@router.post("", response_model=PageOut, status_code=201)
def create_page(payload: PageCreate, db: Session = Depends(get_db)):
    with committing(db):
        page = page_service.create_page(db, tenant_id=payload.tenant_id, title=payload.title, slug=payload.slug)
    return page


@router.get("", response_model=List[PageOut])
def list_pages(
    tenant_id: int = Query(...),
    status: Optional[str] = Query(None, pattern="^(draft|published)$"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return page_service.list_pages(db, tenant_id=tenant_id, status=status, limit=limit, offset=offset)


# /by-slug va antes de /{page_id}
@router.get("/by-slug", response_model=PageWithContentOut)
def get_page_by_slug(
    response: Response,
    tenant_id: int = Query(...),
    slug: str = Query(..., min_length=1),
    store: VersionStore = Depends(get_version_store),
):
    page = page_service.get_page_by_slug(store.db, tenant_id=tenant_id, slug=slug)
    apply_cache_headers(response, status="draft")  # camino del editor: nunca cachear
    return _with_content(store, page)


@router.get("/{page_id}", response_model=PageWithContentOut)
def get_page(
    page_id: int,
    response: Response,
    tenant_id: int = Query(...),
    store: VersionStore = Depends(get_version_store),
):
    page = get_page_for_tenant(store.db, page_id, tenant_id)
    apply_cache_headers(response, status="draft")
    return _with_content(store, page)


@router.patch("/{page_id}", response_model=PageOut)
def update_page(
    page_id: int,
    payload: PageUpdate,
    db: Session = Depends(get_db),
    cache: DeliveryCache = Depends(get_delivery_cache),
):
    with committing(db):
        page, old_slug = page_service.update_page(
            db, page_id, payload.tenant_id, title=payload.title, slug=payload.slug,
        )
    cache.invalidate_page(page.tenant_id, page.slug)
    if old_slug:
        cache.invalidate_page(page.tenant_id, old_slug)
    return page


@router.delete("/{page_id}", status_code=204)
def delete_page(
    page_id: int,
    tenant_id: int = Query(...),
    db: Session = Depends(get_db),
    cache: DeliveryCache = Depends(get_delivery_cache),
):
    with committing(db):
        page = page_service.delete_page(db, page_id, tenant_id)
    cache.invalidate_page(tenant_id, page.slug)
    return Response(status_code=204)


# ---------- Versions ----------
@router.post("/{page_id}/versions", response_model=VersionOut, status_code=201)
def append_version(
    page_id: int,
    payload: VersionAppend,
    store: VersionStore = Depends(get_version_store),
):
    with committing(store.db):
        version = store.append(page_id, payload.tenant_id, payload.blocks, meta=payload.meta)
    return version


@router.get("/{page_id}/versions", response_model=List[VersionOut])
def list_versions(
    page_id: int,
    tenant_id: int = Query(...),
    store: VersionStore = Depends(get_version_store),
):
    return store.list(page_id, tenant_id)


# /latest va antes de /{version_id}
@router.get("/{page_id}/versions/latest", response_model=Optional[VersionOut])
def get_latest_version(
    page_id: int,
    tenant_id: int = Query(...),
    store: VersionStore = Depends(get_version_store),
):
    return store.latest(page_id, tenant_id)


@router.get("/{page_id}/versions/{version_id}", response_model=VersionOut)
def get_version(
    page_id: int,
    version_id: int,
    tenant_id: int = Query(...),
    store: VersionStore = Depends(get_version_store),
):
    return store.get(page_id, tenant_id, version_id)


@router.post("/{page_id}/versions/{version_id}/restore", response_model=VersionOut, status_code=201)
def restore_version(
    page_id: int,
    version_id: int,
    payload: TenantScoped,
    store: VersionStore = Depends(get_version_store),
):
    with committing(store.db):
        version = store.restore(page_id, payload.tenant_id, version_id)
    return version


# ---------- Publish / Unpublish ----------
@router.post("/{page_id}/publish", response_model=PageOut)
def publish_page(
    page_id: int,
    payload: PublishIn,
    background: BackgroundTasks,
    db: Session = Depends(get_db),
    cache: DeliveryCache = Depends(get_delivery_cache),
):
    # el revalidate se encola y corre tras el commit y la respuesta
    def _enqueue_revalidate(page: Page, domain: str) -> None:
        background.add_task(revalidation_service.revalidate_domain, domain)

    with committing(db):
        page = publish(
            db, page_id, payload.tenant_id,
            live_domain=payload.live_domain,
            revalidator=_enqueue_revalidate,
            invalidator=cache_invalidator(cache, db),
        )
    return page


@router.post("/{page_id}/unpublish", response_model=PageOut)
def unpublish_page(
    page_id: int,
    payload: TenantScoped,
    db: Session = Depends(get_db),
    cache: DeliveryCache = Depends(get_delivery_cache),
):
    with committing(db):
        page = set_draft(db, page_id, payload.tenant_id, invalidator=cache_invalidator(cache, db))
    return page


# ---------- Clone ----------
@router.post("/{page_id}/clone", response_model=PageWithContentOut, status_code=201)
def clone_page(
    page_id: int,
    payload: CloneIn,
    store: VersionStore = Depends(get_version_store),
):
    with committing(store.db):
        clone, version = page_service.clone_page(
            store.db, store,
            tenant_id=payload.tenant_id,
            page_id=page_id,
            new_slug=payload.new_slug,
            new_title=payload.new_title,
        )
    out = PageWithContentOut.model_validate(clone)
    out.latest_version = VersionOut.model_validate(version)
    return out
