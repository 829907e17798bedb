# sitecms/services/tenant_guard.py
# Aislamiento por tenant en la frontera de acceso a datos.
# "No existe" y "existe pero es de otro tenant" producen el MISMO error.
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from sitecms.core.errors import NotFoundError
from sitecms.models.page import Page, PageVersion
from sitecms.models.tenant import Tenant


def get_tenant_or_404(db: Session, tenant_id: int) -> Tenant:
    tenant = db.get(Tenant, tenant_id)
    if not tenant:
        raise NotFoundError("Tenant not found")
    return tenant


def get_tenant_by_slug(db: Session, tenant_slug: str) -> Tenant:
    tenant = db.scalar(select(Tenant).where(Tenant.slug == tenant_slug))
    if not tenant:
        raise NotFoundError("Tenant not found")
    return tenant


def get_page_for_tenant(db: Session, page_id: int, tenant_id: int, *, for_update: bool = False) -> Page:
    stmt = select(Page).where(Page.id == page_id, Page.tenant_id == tenant_id)
    if for_update:
        stmt = stmt.with_for_update()
    page = db.scalar(stmt)
    if not page:
        raise NotFoundError("Page not found")
    return page


def get_version_for_page(db: Session, page: Page, version_id: int) -> PageVersion:
    version = db.scalar(
        select(PageVersion).where(
            PageVersion.id == version_id,
            PageVersion.page_id == page.id,
            PageVersion.tenant_id == page.tenant_id,
        )
    )
    if not version:
        raise NotFoundError("Version not found")
    return version
