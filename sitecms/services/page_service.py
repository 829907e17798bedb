# sitecms/services/page_service.py
# Lógica de negocio de páginas: alta, edición de title/slug, borrado, clonado, Home por defecto.
from __future__ import annotations

import logging
import re
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sitecms.blocks import Block, BlockType, new_block, new_block_id
from sitecms.core.errors import NotFoundError, ValidationError
from sitecms.core.settings import settings
from sitecms.models.page import Page, PageVersion
from sitecms.models.tenant import Tenant
from sitecms.services.tenant_guard import get_page_for_tenant, get_tenant_or_404
from sitecms.services.version_store import VersionStore, version_blocks

log = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"^/?[a-z0-9]+(?:[-/][a-z0-9]+)*/?$")
MAX_SLUG_LEN = 128
MAX_TITLE_LEN = 200


# -------- Validación --------
def normalize_slug(slug: Optional[str]) -> str:
    s = (slug or "").strip()
    if s == "/":
        return s
    if not s:
        raise ValidationError("Slug is required")
    if len(s) > MAX_SLUG_LEN:
        raise ValidationError(f"Slug must be at most {MAX_SLUG_LEN} characters")
    if not _SLUG_RE.match(s):
        raise ValidationError(
            f"Invalid slug '{s}': use lowercase letters, digits, '-' and '/' (e.g. '/about', 'landing-2025')"
        )
    return s


def normalize_title(title: Optional[str]) -> str:
    t = (title or "").strip()
    if not t:
        raise ValidationError("Title is required")
    if len(t) > MAX_TITLE_LEN:
        raise ValidationError(f"Title must be at most {MAX_TITLE_LEN} characters")
    return t


def _ensure_slug_free(db: Session, tenant_id: int, slug: str, *, exclude_page_id: Optional[int] = None) -> None:
    stmt = select(Page.id).where(Page.tenant_id == tenant_id, Page.slug == slug)
    if exclude_page_id is not None:
        stmt = stmt.where(Page.id != exclude_page_id)
    if db.scalar(stmt) is not None:
        raise ValidationError(f"Slug '{slug}' already in use")


def _flush_page(db: Session, page: Page) -> None:
    # el UNIQUE (tenant_id, slug) sigue siendo la fuente de verdad ante carreras
    try:
        with db.begin_nested():
            db.add(page)
            db.flush()
    except IntegrityError:
        raise ValidationError(f"Slug '{page.slug}' already in use")


# -------- Pages --------
def create_page(db: Session, *, tenant_id: int, title: str, slug: str) -> Page:
    """
    Crea la página en draft SIN versiones: el primer append será la versión 1.
    No hace commit.
    """
    get_tenant_or_404(db, tenant_id)
    title = normalize_title(title)
    slug = normalize_slug(slug)
    _ensure_slug_free(db, tenant_id, slug)

    page = Page(tenant_id=tenant_id, title=title, slug=slug, status="draft")
    _flush_page(db, page)
    log.info("page created tenant=%s page=%s slug=%s", tenant_id, page.id, slug)
    return page


def list_pages(db: Session, *, tenant_id: int, status: Optional[str] = None, limit: int = 100, offset: int = 0) -> Sequence[Page]:
    stmt = select(Page).where(Page.tenant_id == tenant_id)
    if status:
        stmt = stmt.where(Page.status == status)
    stmt = stmt.order_by(Page.updated_at.desc(), Page.id.desc()).limit(limit).offset(offset)
    return db.scalars(stmt).all()


def get_page_by_slug(db: Session, *, tenant_id: int, slug: str) -> Page:
    page = db.scalar(select(Page).where(Page.tenant_id == tenant_id, Page.slug == slug.strip()))
    if not page:
        raise NotFoundError("Page not found")
    return page


def update_page(
    db: Session,
    page_id: int,
    tenant_id: int,
    *,
    title: Optional[str] = None,
    slug: Optional[str] = None,
) -> tuple[Page, Optional[str]]:
    """
    Edición de title/slug (last-writer-wins). Devuelve (page, slug_anterior) para
    que el caller invalide la caché pública también bajo el slug viejo.
    """
    page = get_page_for_tenant(db, page_id, tenant_id)
    old_slug = None
    if title is not None:
        page.title = normalize_title(title)
    if slug is not None:
        new_slug = normalize_slug(slug)
        if new_slug != page.slug:
            _ensure_slug_free(db, tenant_id, new_slug, exclude_page_id=page.id)
            old_slug = page.slug
            page.slug = new_slug
    _flush_page(db, page)
    return page, old_slug


def delete_page(db: Session, page_id: int, tenant_id: int) -> Page:
    """Hard delete; las versiones caen por cascade."""
    page = get_page_for_tenant(db, page_id, tenant_id)
    db.delete(page)
    db.flush()
    log.info("page deleted tenant=%s page=%s", tenant_id, page_id)
    return page


def clone_page(
    db: Session,
    store: VersionStore,
    *,
    tenant_id: int,
    page_id: int,
    new_slug: str,
    new_title: Optional[str] = None,
) -> tuple[Page, PageVersion]:
    """
    Duplica la página con un slug nuevo. La copia:
      - siempre nace en draft (sin importar el status del origen),
      - recibe como versión 1 los bloques de la última versión del origen
        (ids de bloque nuevos), o una versión 1 vacía si el origen no tiene ninguna.
    Página + versión se escriben en la misma transacción (el caller hace commit).
    """
    source = get_page_for_tenant(db, page_id, tenant_id)
    latest: Optional[PageVersion] = store.latest(source.id, tenant_id)

    title = new_title if (new_title and new_title.strip()) else f"{source.title} (Copy)"
    clone = create_page(db, tenant_id=tenant_id, title=title, slug=new_slug)

    meta: dict = {}
    blocks: list = []
    if latest is not None:
        meta = {"cloned_from": latest.id}
        for b in version_blocks(latest):
            blocks.append(b.model_copy(update={"id": new_block_id()}))

    version = store.append_to(clone, blocks, meta=meta)
    return clone, version


# -------- Alta de tenant --------
DEFAULT_HERO_IMAGE = "/uploads/default-hero.jpg"


def default_home_blocks(tenant_name: str) -> list[Block]:
    return [
        new_block(BlockType.HERO, {
            "title": f"Welcome to {tenant_name}",
            "subtitle": f"This is your new website powered by {settings.APP_NAME}",
            "image": DEFAULT_HERO_IMAGE,
        }),
        new_block(BlockType.POSTS_FEED, {"limit": 3}),
    ]


def seed_default_pages(db: Session, tenant: Tenant, *, store: Optional[VersionStore] = None) -> Page:
    """
    Página "Home" (slug "/") en draft con una versión 1 (hero + posts-feed),
    el punto de partida de un tenant recién creado. No hace commit: va en la
    misma transacción que el alta del tenant.
    """
    store = store or VersionStore(db)
    home = create_page(db, tenant_id=tenant.id, title="Home", slug="/")
    version = store.append_to(home, default_home_blocks(tenant.name))
    log.info("default pages seeded tenant=%s home=%s version=%s", tenant.id, home.id, version.version_number)
    return home
