# sitecms/editor/backends.py
# Lo que la sesión del editor necesita del almacenamiento; en proceso o por HTTP.
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Mapping, Optional, Protocol

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from sitecms.blocks import Block, block_to_dict
from sitecms.core.errors import TransientStoreError
from sitecms.db.session import committing, run_after_commit
from sitecms.services import page_service
from sitecms.services.tenant_guard import get_page_for_tenant
from sitecms.services.version_store import Invalidator, VersionStore, version_blocks


class EditorBackend(Protocol):
    """
    Todas las llamadas devuelven dicts planos (mismo shape que el API JSON):
      page:    {"id", "tenant_id", "slug", "title", "status", ...}
      version: {"id", "page_id", "version_number", "blocks", "meta", ...}
    """

    def get_page(self, page_id: int, tenant_id: int) -> dict:
        ...

    def latest_version(self, page_id: int, tenant_id: int) -> Optional[dict]:
        ...

    def create_page(self, tenant_id: int, title: str, slug: str) -> dict:
        ...

    def append_version(self, page_id: int, tenant_id: int, blocks: list[dict]) -> dict:
        ...

    def restore_version(self, page_id: int, tenant_id: int, version_id: int) -> dict:
        ...


def page_to_dict(page) -> dict:
    return {
        "id": page.id,
        "tenant_id": page.tenant_id,
        "slug": page.slug,
        "title": page.title,
        "status": page.status,
        "published_at": page.published_at,
    }


def version_to_dict(version) -> dict:
    return {
        "id": version.id,
        "page_id": version.page_id,
        "tenant_id": version.tenant_id,
        "version_number": version.version_number,
        "blocks": [block_to_dict(b) for b in version_blocks(version)],
        "meta": dict(version.meta or {}),
        "created_at": version.created_at,
    }


class LocalBackend:
    """
    Backend en proceso: una Session y una transacción comprometida por llamada.
    Los CmsError de los servicios se propagan tal cual; los fallos del driver
    (conexión, lock, commit) llegan como TransientStoreError.
    """

    def __init__(self, session_factory: sessionmaker[Session], *, invalidator: Optional[Invalidator] = None) -> None:
        self.session_factory = session_factory
        self.invalidator = invalidator

    @contextmanager
    def _session(self, *, write: bool = False) -> Iterator[Session]:
        try:
            with self.session_factory() as db:
                if write:
                    with committing(db):
                        yield db
                else:
                    yield db
        except DBAPIError as e:
            raise TransientStoreError("Page store unavailable") from e

    def _store(self, db: Session) -> VersionStore:
        if self.invalidator is None:
            return VersionStore(db)
        # se invalida cuando la versión ya es visible para otros lectores
        return VersionStore(db, invalidator=lambda page: run_after_commit(db, self.invalidator, page))

    def get_page(self, page_id: int, tenant_id: int) -> dict:
        with self._session() as db:
            return page_to_dict(get_page_for_tenant(db, page_id, tenant_id))

    def latest_version(self, page_id: int, tenant_id: int) -> Optional[dict]:
        with self._session() as db:
            latest = self._store(db).latest(page_id, tenant_id)
            return version_to_dict(latest) if latest else None

    def create_page(self, tenant_id: int, title: str, slug: str) -> dict:
        with self._session(write=True) as db:
            page = page_service.create_page(db, tenant_id=tenant_id, title=title, slug=slug)
            out = page_to_dict(page)
        return out

    def append_version(self, page_id: int, tenant_id: int, blocks: Iterable[Block | Mapping[str, Any]]) -> dict:
        with self._session(write=True) as db:
            version = self._store(db).append(page_id, tenant_id, blocks)
            out = version_to_dict(version)
        return out

    def restore_version(self, page_id: int, tenant_id: int, version_id: int) -> dict:
        with self._session(write=True) as db:
            version = self._store(db).restore(page_id, tenant_id, version_id)
            out = version_to_dict(version)
        return out
