# sitecms/services/publish_service.py
# ⟶ Reglas de transición draft/published + helpers HTTP-date/ETag/Cache-Control
from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Callable, Literal, Optional

from fastapi import Response
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from sitecms.core.errors import ValidationError
from sitecms.core.settings import settings
from sitecms.models.page import Page, PageVersion
from sitecms.services.tenant_guard import get_page_for_tenant
from sitecms.services.version_store import Invalidator

log = logging.getLogger(__name__)

Status = Literal["draft", "published"]

# (page, live_domain) → dispara el revalidate del sitio público
Revalidator = Callable[[Page, str], None]


# -----------------------------
# Transiciones de estado Page
# -----------------------------
def can_transition(src: Status, dst: Status) -> bool:
    if src == dst:
        return True
    if src == "draft" and dst == "published":
        return True
    if src == "published" and dst == "draft":
        return True
    return False


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def transition_page_status(db: Session, page: Page, dst: Status) -> Page:
    src = page.status
    if not can_transition(src, dst):
        raise ValidationError(f"Invalid transition {src} → {dst}")

    page.status = dst
    if dst == "published":
        page.published_at = _now_utc()
    elif dst == "draft":
        # “unpublish”: limpiamos published_at
        page.published_at = None

    db.flush()
    return page


def resolve_live_domain(page: Page, live_domain: Optional[str] = None) -> Optional[str]:
    """Dominio explícito del request, o el dominio configurado del tenant."""
    domain = (live_domain or "").strip()
    if not domain and page.tenant is not None:
        domain = (page.tenant.domain or "").strip()
    return domain or None


def has_content(db: Session, page: Page) -> bool:
    n = db.scalar(
        select(func.count(PageVersion.id)).where(
            PageVersion.tenant_id == page.tenant_id,
            PageVersion.page_id == page.id,
        )
    )
    return bool(n)


def publish(
    db: Session,
    page_id: int,
    tenant_id: int,
    *,
    live_domain: Optional[str] = None,
    revalidator: Optional[Revalidator] = None,
    invalidator: Optional[Invalidator] = None,
    require_content: Optional[bool] = None,
) -> Page:
    """
    draft → published (idempotente si ya está publicada). No crea versión.

    No hace commit. `revalidator(page, domain)` es best-effort: en el API
    sólo encola una tarea que corre DESPUÉS del commit; si falla aquí se
    loguea y la publicación sigue en pie.
    """
    page = get_page_for_tenant(db, page_id, tenant_id)
    if require_content is None:
        require_content = settings.PUBLISH_REQUIRES_CONTENT
    if require_content and not has_content(db, page):
        raise ValidationError("Cannot publish a page without saved content")

    before = page.status
    transition_page_status(db, page, "published")
    log.info("page published tenant=%s page=%s (%s → published)", tenant_id, page.id, before)

    if invalidator:
        invalidator(page)

    domain = resolve_live_domain(page, live_domain)
    if revalidator is None:
        return page
    if not domain:
        log.warning("no live domain for tenant=%s; skipping revalidation of page=%s", tenant_id, page.id)
        return page
    try:
        revalidator(page, domain)
    except Exception:
        log.exception("revalidation dispatch failed for page=%s domain=%s", page.id, domain)
    return page


def set_draft(
    db: Session,
    page_id: int,
    tenant_id: int,
    *,
    invalidator: Optional[Invalidator] = None,
) -> Page:
    """published → draft, o draft → draft. Las versiones no se tocan."""
    page = get_page_for_tenant(db, page_id, tenant_id)
    before = page.status
    transition_page_status(db, page, "draft")
    log.info("page set to draft tenant=%s page=%s (%s → draft)", tenant_id, page.id, before)
    if invalidator:
        invalidator(page)
    return page


unpublish = set_draft


# -----------------------------
# ETags y Cache-Control básicos
# -----------------------------
def compute_etag_from_bytes(body: bytes) -> str:
    """
    ETag como sha256 hex del cuerpo bytes.
    """
    return hashlib.sha256(body).hexdigest()


def apply_cache_headers(response: Response, *, status: Status) -> None:
    if status == "published":
        response.headers["Cache-Control"] = "public, max-age=60"
    else:
        response.headers["Cache-Control"] = "no-store"


# -----------------------------
# HTTP-date helpers (UTC)
# -----------------------------
def _to_utc(dt: datetime) -> datetime:
    """
    Asegura que el datetime sea timezone-aware en UTC.
    - Si viene naive, se asume UTC (no desplaza).
    - Si viene con tz, se convierte a UTC con astimezone.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def httpdate(dt: datetime) -> str:
    """
    Convierte un datetime a HTTP-date (RFC 7231).
    format_datetime(..., usegmt=True) exige tz==UTC.
    """
    return format_datetime(_to_utc(dt), usegmt=True)


def parse_httpdate(value: str) -> datetime | None:
    """
    Parsea un HTTP-date a datetime aware (UTC). Devuelve None si falla.
    """
    try:
        dt = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def apply_delivery_cache_headers(
    resp: Response,
    *,
    etag: str | None,
    last_modified: datetime | None,
) -> None:
    """
    Aplica ETag, Last-Modified y Cache-Control para el detalle público.
    """
    if etag:
        resp.headers["ETag"] = etag
    if last_modified:
        resp.headers["Last-Modified"] = httpdate(last_modified)
    resp.headers["Cache-Control"] = "public, max-age=60, stale-while-revalidate=120"
