# sitecms/services/version_store.py
# Historial append-only de snapshots completos por página.
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, List, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from sitecms.blocks import Block, blocks_from_content, content_from_blocks, parse_blocks
from sitecms.core.errors import ConcurrentSequenceRace, TransientStoreError
from sitecms.core.settings import settings
from sitecms.models.page import Page, PageVersion
from sitecms.services.tenant_guard import get_page_for_tenant, get_version_for_page
from sitecms.utils.payload_guard import enforce_content_size

log = logging.getLogger(__name__)

# Señal de invalidación para lectores del contenido de una página
Invalidator = Callable[[Page], None]

# Procedencia que sólo escribe el propio store (restore) o el clone
RESERVED_META_KEYS = frozenset({"restored_from", "restored_at", "cloned_from"})


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def version_blocks(version: PageVersion) -> list[Block]:
    return blocks_from_content(version.content)


class VersionStore:
    """
    Snapshots inmutables con version_number estrictamente creciente por página.

    - No hace commit; el caller debe hacer db.commit().
    - Toda lectura/escritura pasa por el guard de tenant.
    - version_number = max + 1 dentro de un SAVEPOINT; si otro escritor ganó la
      carrera, el UNIQUE (page_id, version_number) falla y se reintenta.
    """

    def __init__(
        self,
        db: Session,
        *,
        invalidator: Optional[Invalidator] = None,
        max_append_attempts: Optional[int] = None,
    ) -> None:
        self.db = db
        self.invalidator = invalidator
        self.max_append_attempts = int(max_append_attempts or settings.VERSION_APPEND_MAX_ATTEMPTS)

    # -----------------------------
    # Lecturas
    # -----------------------------
    def _next_version_number(self, page: Page) -> int:
        max_n = self.db.scalar(
            select(func.max(PageVersion.version_number)).where(
                PageVersion.tenant_id == page.tenant_id,
                PageVersion.page_id == page.id,
            )
        )
        return 1 if max_n is None else int(max_n) + 1

    def latest(self, page_id: int, tenant_id: int) -> Optional[PageVersion]:
        page = get_page_for_tenant(self.db, page_id, tenant_id)
        return self._latest_for(page)

    def _latest_for(self, page: Page) -> Optional[PageVersion]:
        return self.db.scalar(
            select(PageVersion)
            .where(PageVersion.tenant_id == page.tenant_id, PageVersion.page_id == page.id)
            .order_by(PageVersion.version_number.desc())
            .limit(1)
        )

    def list(self, page_id: int, tenant_id: int) -> List[PageVersion]:
        """Historial completo, del más nuevo al más antiguo."""
        page = get_page_for_tenant(self.db, page_id, tenant_id)
        return list(
            self.db.scalars(
                select(PageVersion)
                .where(PageVersion.tenant_id == page.tenant_id, PageVersion.page_id == page.id)
                .order_by(PageVersion.version_number.desc())
            )
        )

    def get(self, page_id: int, tenant_id: int, version_id: int) -> PageVersion:
        page = get_page_for_tenant(self.db, page_id, tenant_id)
        return get_version_for_page(self.db, page, version_id)

    # -----------------------------
    # Escrituras
    # -----------------------------
    def append(
        self,
        page_id: int,
        tenant_id: int,
        blocks: Iterable[Block | Mapping[str, Any]],
        meta: Optional[Mapping[str, Any]] = None,
    ) -> PageVersion:
        page = get_page_for_tenant(self.db, page_id, tenant_id)
        return self.append_to(page, blocks, meta=meta)

    def append_to(
        self,
        page: Page,
        blocks: Iterable[Block | Mapping[str, Any]],
        meta: Optional[Mapping[str, Any]] = None,
    ) -> PageVersion:
        """Append sobre una Page ya verificada por el guard (create/clone la acaban de crear)."""
        content = content_from_blocks(parse_blocks(blocks, fresh_ids=True))
        enforce_content_size(content)

        try:
            version = self._insert_with_retry(page, content, dict(meta or {}))
            page.updated_at = _now_utc()
            self.db.flush()
        except OperationalError as e:
            raise TransientStoreError("Version store unavailable", page_id=page.id) from e

        log.info(
            "page version appended tenant=%s page=%s version=%s blocks=%s",
            page.tenant_id, page.id, version.version_number, len(content["blocks"]),
        )
        if self.invalidator:
            self.invalidator(page)
        return version

    def _insert_with_retry(self, page: Page, content: dict, meta: dict) -> PageVersion:
        last_number = None
        for attempt in range(1, self.max_append_attempts + 1):
            number = self._next_version_number(page)
            version = PageVersion(
                page_id=page.id,
                tenant_id=page.tenant_id,
                version_number=number,
                content=content,
                meta=meta,
            )
            try:
                with self.db.begin_nested():
                    self.db.add(version)
                    self.db.flush()
                return version
            except IntegrityError:
                # otro escritor insertó el mismo número entre nuestro SELECT max y el INSERT
                last_number = number
                log.warning(
                    "version_number race on page=%s number=%s (attempt %s/%s)",
                    page.id, number, attempt, self.max_append_attempts,
                )
                if version in self.db:
                    self.db.expunge(version)
        raise ConcurrentSequenceRace(
            f"Could not assign a version number for page {page.id} after {self.max_append_attempts} attempts",
            page_id=page.id,
            version_number=last_number,
        )

    def restore(self, page_id: int, tenant_id: int, version_id: int) -> PageVersion:
        """
        Copia los bloques de una versión previa a una versión NUEVA (head).
        La versión histórica no se toca.
        """
        page = get_page_for_tenant(self.db, page_id, tenant_id)
        target = get_version_for_page(self.db, page, version_id)
        # sólo la procedencia del restore; el meta del target (p.ej. cloned_from) no se hereda
        meta = {
            "restored_from": target.id,
            "restored_at": _now_utc().isoformat(),
        }
        return self.append_to(page, version_blocks(target), meta=meta)
