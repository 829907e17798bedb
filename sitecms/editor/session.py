# sitecms/editor/session.py
# Working copy del editor + autosave con debounce contra el VersionStore.
from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Iterable, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from sitecms.blocks import (
    Block, BlockType, block_to_dict, new_block, parse_blocks, with_properties,
)
from sitecms.core.errors import CmsError, NotFoundError, ValidationError
from sitecms.core.settings import settings
from sitecms.editor.backends import EditorBackend
from sitecms.editor.scheduler import Scheduler

log = logging.getLogger(__name__)

DEFAULT_NEW_PAGE_TITLE = "New Page"


class SaveStatus(str, Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"


def _placeholder_slug() -> str:
    return f"page-{int(time.time() * 1000)}"


class EditorSession:
    """
    Sesión de edición de UNA página.

    - Las ediciones mutan la working copy al instante y reprograman un único
      flush (debounce). Sólo se persiste el estado final de una ráfaga.
    - Un flush fallido deja status=idle y `last_error`; la working copy no se
      toca y la siguiente edición (o flush()) reintenta.
    - "saved" sólo se muestra si el append realmente tuvo éxito; luego decae a idle.
    - Página nueva (page_id=None): el primer flush no vacío crea la Page y la
      sesión queda ligada a su id.

    Con ThreadingScheduler los flushes corren en hilos de timer: el estado va
    protegido por un RLock y los flushes se serializan entre sí.
    """

    def __init__(
        self,
        backend: EditorBackend,
        scheduler: Scheduler,
        tenant_id: int,
        page_id: Optional[int] = None,
        *,
        blocks: Optional[Iterable[Any]] = None,
        page: Optional[dict] = None,
        last_version: Optional[dict] = None,
        debounce_seconds: Optional[float] = None,
        saved_display_seconds: Optional[float] = None,
        new_page_title: str = DEFAULT_NEW_PAGE_TITLE,
        new_page_slug: Optional[str] = None,
        on_status: Optional[Callable[[SaveStatus], None]] = None,
        on_error: Optional[Callable[[CmsError], None]] = None,
    ) -> None:
        self.backend = backend
        self.scheduler = scheduler
        self.tenant_id = tenant_id
        self.page_id = page_id
        self.page = page
        self.last_version = last_version
        self.debounce_seconds = float(
            settings.AUTOSAVE_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        )
        self.saved_display_seconds = float(
            settings.SAVED_DISPLAY_SECONDS if saved_display_seconds is None else saved_display_seconds
        )
        self.new_page_title = new_page_title
        self.new_page_slug = new_page_slug
        self.on_status = on_status
        self.on_error = on_error

        self._blocks: List[Block] = parse_blocks(blocks)
        self._status = SaveStatus.IDLE
        self._dirty = False
        self._revision = 0
        self._closed = False
        self.last_error: Optional[CmsError] = None

        self._lock = threading.RLock()
        self._flush_lock = threading.Lock()
        self._flush_handle: Any = None
        self._flush_token = 0
        self._decay_handle: Any = None

    @classmethod
    def open(
        cls,
        backend: EditorBackend,
        scheduler: Scheduler,
        tenant_id: int,
        page_id: Optional[int] = None,
        **kwargs: Any,
    ) -> "EditorSession":
        """Hidrata desde la última versión; vacía si la página es nueva o nunca se guardó."""
        if page_id is None:
            return cls(backend, scheduler, tenant_id, None, **kwargs)
        page = backend.get_page(page_id, tenant_id)
        latest = backend.latest_version(page_id, tenant_id)
        blocks = latest["blocks"] if latest else []
        return cls(backend, scheduler, tenant_id, page_id, blocks=blocks, page=page, last_version=latest, **kwargs)

    # -----------------------------
    # Estado
    # -----------------------------
    @property
    def blocks(self) -> List[Block]:
        with self._lock:
            return list(self._blocks)

    @property
    def status(self) -> SaveStatus:
        return self._status

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def is_new(self) -> bool:
        return self.page_id is None

    @property
    def has_pending_flush(self) -> bool:
        return self._flush_handle is not None

    def _set_status(self, status: SaveStatus) -> None:
        if status is self._status:
            return
        self._status = status
        if self.on_status:
            self.on_status(status)

    def _index_of(self, block_id: str) -> int:
        for i, b in enumerate(self._blocks):
            if b.id == block_id:
                return i
        raise NotFoundError("Block not found", block_id=block_id)

    # -----------------------------
    # Mutaciones (síncronas sobre la working copy)
    # -----------------------------
    def _changed(self) -> None:
        self._revision += 1
        self._dirty = True
        self._schedule_flush()

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("Editor session is closed")

    def add_block(
        self,
        block_type: BlockType | str,
        after_id: Optional[str] = None,
        properties: Optional[Mapping[str, Any]] = None,
    ) -> Block:
        with self._lock:
            self._ensure_open()
            position = len(self._blocks) if after_id is None else self._index_of(after_id) + 1
            try:
                block = new_block(block_type, properties)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid properties for block type {block_type!r}") from e
            self._blocks.insert(position, block)
            self._changed()
            return block

    def remove_block(self, block_id: str) -> Block:
        with self._lock:
            self._ensure_open()
            block = self._blocks.pop(self._index_of(block_id))
            self._changed()
            return block

    def move_block(self, block_id: str, to_index: int) -> None:
        with self._lock:
            self._ensure_open()
            block = self._blocks.pop(self._index_of(block_id))
            to_index = max(0, min(int(to_index), len(self._blocks)))
            self._blocks.insert(to_index, block)
            self._changed()

    def reorder(self, block_ids: Iterable[str]) -> None:
        """Nuevo orden completo (p.ej. al soltar un drag & drop)."""
        with self._lock:
            self._ensure_open()
            ids = list(block_ids)
            by_id = {b.id: b for b in self._blocks}
            if len(ids) != len(by_id) or set(ids) != set(by_id):
                raise ValidationError("Reorder must list every block exactly once")
            self._blocks = [by_id[i] for i in ids]
            self._changed()

    def update_block(self, block_id: str, patch: Mapping[str, Any]) -> Block:
        """Merge superficial de `patch` sobre el property bag."""
        with self._lock:
            self._ensure_open()
            i = self._index_of(block_id)
            try:
                updated = with_properties(self._blocks[i], patch)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid properties for block {block_id}") from e
            self._blocks[i] = updated
            self._changed()
            return updated

    # -----------------------------
    # Debounce
    # -----------------------------
    def _schedule_flush(self) -> None:
        self._cancel_flush()
        self._flush_token += 1
        token = self._flush_token
        self._flush_handle = self.scheduler.schedule(self.debounce_seconds, lambda: self._on_timer(token))

    def _cancel_flush(self) -> None:
        if self._flush_handle is not None:
            self.scheduler.cancel(self._flush_handle)
            self._flush_handle = None

    def _on_timer(self, token: int) -> None:
        with self._lock:
            # un timer ya reemplazado no debe disparar nada
            if token != self._flush_token or self._flush_handle is None:
                return
            self._flush_handle = None
        self.flush()

    def _schedule_decay(self) -> None:
        self._cancel_decay()
        self._decay_handle = self.scheduler.schedule(self.saved_display_seconds, self._decay)

    def _cancel_decay(self) -> None:
        if self._decay_handle is not None:
            self.scheduler.cancel(self._decay_handle)
            self._decay_handle = None

    def _decay(self) -> None:
        with self._lock:
            self._decay_handle = None
            if self._status is SaveStatus.SAVED:
                self._set_status(SaveStatus.IDLE)

    # -----------------------------
    # Persistencia
    # -----------------------------
    def flush(self) -> bool:
        """
        Persiste la working copy como una versión nueva. Devuelve True si no
        quedó nada pendiente, False si el backend falló.
        """
        with self._flush_lock:
            with self._lock:
                self._cancel_flush()
                if not self._dirty:
                    return True
                revision = self._revision
                payload = [block_to_dict(b) for b in self._blocks]
                if self.page_id is None and not payload:
                    # placeholder vacío: nada que crear todavía
                    self._dirty = False
                    return True
                self._cancel_decay()
                self._set_status(SaveStatus.SAVING)

            try:
                if self.page_id is None:
                    self._create_page()
                version = self.backend.append_version(self.page_id, self.tenant_id, payload)
            except CmsError as e:
                with self._lock:
                    self.last_error = e
                    self._set_status(SaveStatus.IDLE)
                log.warning("editor flush failed tenant=%s page=%s: %s", self.tenant_id, self.page_id, e)
                if self.on_error:
                    self.on_error(e)
                return False
            except Exception:
                # error inesperado: nunca dejar el indicador en "saving"
                with self._lock:
                    self._set_status(SaveStatus.IDLE)
                log.exception("editor flush crashed tenant=%s page=%s", self.tenant_id, self.page_id)
                raise

            with self._lock:
                self.last_version = version
                self.last_error = None
                # ediciones durante el append → siguen sucias (su timer ya está programado)
                if self._revision == revision:
                    self._dirty = False
                self._set_status(SaveStatus.SAVED)
                self._schedule_decay()
                return not self._dirty

    def _create_page(self) -> None:
        slug = self.new_page_slug or _placeholder_slug()
        page = self.backend.create_page(self.tenant_id, self.new_page_title, slug)
        with self._lock:
            self.page = page
            self.page_id = page["id"]
        log.info("editor placeholder persisted tenant=%s page=%s slug=%s", self.tenant_id, self.page_id, slug)

    def restore(self, version_id: int) -> dict:
        """
        Restore inmediato (sin debounce): el backend ya persiste la versión nueva,
        así que la working copy se reemplaza entera y queda limpia.
        NotFoundError (y cualquier CmsError) se propaga: es un error bloqueante.
        """
        with self._flush_lock:
            with self._lock:
                self._ensure_open()
                if self.page_id is None:
                    raise NotFoundError("Page not found")
                self._cancel_flush()
                self._cancel_decay()
                self._set_status(SaveStatus.SAVING)
            try:
                version = self.backend.restore_version(self.page_id, self.tenant_id, version_id)
            except Exception as e:
                with self._lock:
                    if isinstance(e, CmsError):
                        self.last_error = e
                    self._set_status(SaveStatus.IDLE)
                    # si había ediciones sin guardar, vuelven a quedar programadas
                    if self._dirty:
                        self._schedule_flush()
                raise

            with self._lock:
                self._blocks = parse_blocks(version.get("blocks"))
                self._revision += 1
                self._dirty = False
                self.last_version = version
                self.last_error = None
                self._set_status(SaveStatus.SAVED)
                self._schedule_decay()
            return version

    def close(self, flush_pending: bool = True) -> bool:
        """Cancela timers; por defecto guarda antes lo que quede sucio."""
        with self._lock:
            if self._closed:
                return not self._dirty
            self._cancel_flush()
            pending = self._dirty
        ok = True
        if flush_pending and pending:
            ok = self.flush()
        with self._lock:
            self._cancel_flush()
            self._cancel_decay()
            self._closed = True
        return ok
