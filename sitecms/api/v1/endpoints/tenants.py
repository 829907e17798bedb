# sitecms/api/v1/endpoints/tenants.py
# Alta/lectura mínima de tenants (bootstrap; la gestión completa vive fuera del core)
from __future__ import annotations
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from sitecms.api.deps import committing
from sitecms.core.errors import ValidationError
from sitecms.db.session import get_db
from sitecms.models.tenant import Tenant
from sitecms.schemas.tenant import TenantCreate, TenantOut
from sitecms.services import page_service
from sitecms.services.tenant_guard import get_tenant_or_404

router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.get("", response_model=List[TenantOut])
def list_tenants(
    db: Session = Depends(get_db),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    stmt = select(Tenant).order_by(Tenant.id.asc())
    return db.execute(stmt.limit(limit).offset(offset)).scalars().all()


@router.get("/{tenant_id}", response_model=TenantOut)
def get_tenant(tenant_id: int, db: Session = Depends(get_db)):
    return get_tenant_or_404(db, tenant_id)


@router.post("", response_model=TenantOut, status_code=201)
def create_tenant(payload: TenantCreate, db: Session = Depends(get_db)):
    slug = payload.slug.strip().lower()
    with committing(db):
        if db.scalar(select(Tenant).where(Tenant.slug == slug)):
            raise ValidationError("Slug already exists")
        t = Tenant(name=payload.name.strip(), slug=slug, domain=(payload.domain or "").strip() or None)
        db.add(t)
        db.flush()
        if payload.seed_default_pages:
            # misma transacción: si la Home falla, el tenant tampoco queda
            page_service.seed_default_pages(db, t)
    db.refresh(t)
    return t
