# sitecms/client.py
# Cliente HTTP (httpx) del API de páginas. Cumple el protocolo EditorBackend,
# así que un EditorSession puede correr contra un servidor remoto.
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

import httpx

from sitecms.blocks import Block, block_to_dict
from sitecms.core.errors import TransientStoreError, error_for_status
from sitecms.core.settings import settings


def _detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, str):
        return detail
    if detail:
        # errores de validación de FastAPI: lista de {loc, msg, ...}
        return "; ".join(str(d.get("msg", d)) if isinstance(d, dict) else str(d) for d in detail)
    return resp.reason_phrase


def _block_payload(blocks: Iterable[Block | Mapping[str, Any]]) -> List[Dict[str, Any]]:
    return [dict(b) if isinstance(b, Mapping) else block_to_dict(b) for b in blocks]


class CmsClient:
    """
    Envoltorio fino sobre /api/v1. Los errores HTTP vuelven a ser CmsError
    (404 → NotFoundError, 409 → ConcurrentSequenceRace, 413/422 → ValidationError,
    5xx y fallos de transporte → TransientStoreError).

    Se puede inyectar un httpx.Client (en tests, el TestClient de FastAPI).
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
        api_prefix: Optional[str] = None,
    ) -> None:
        self._owns_client = client is None
        self.http = client if client is not None else httpx.Client(base_url=base_url, timeout=timeout)
        self.api_prefix = (api_prefix if api_prefix is not None else settings.API_V1_STR).rstrip("/")

    def close(self) -> None:
        if self._owns_client:
            self.http.close()

    def __enter__(self) -> "CmsClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # -----------------------------
    # Transporte
    # -----------------------------
    def _request(self, method: str, path: str, *, api: bool = True, **kwargs: Any) -> Any:
        url = f"{self.api_prefix}{path}" if api else path
        try:
            resp = self.http.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise TransientStoreError(f"{method} {url} failed: {e}") from e
        if resp.status_code >= 400:
            raise error_for_status(resp.status_code, _detail(resp))
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    # -----------------------------
    # Pages
    # -----------------------------
    def create_page(self, tenant_id: int, title: str, slug: str) -> dict:
        return self._request("POST", "/pages", json={"tenant_id": tenant_id, "title": title, "slug": slug})

    def list_pages(self, tenant_id: int, *, status: Optional[str] = None) -> List[dict]:
        params: Dict[str, Any] = {"tenant_id": tenant_id}
        if status:
            params["status"] = status
        return self._request("GET", "/pages", params=params)

    def get_page(self, page_id: int, tenant_id: int) -> dict:
        return self._request("GET", f"/pages/{page_id}", params={"tenant_id": tenant_id})

    def update_page(self, page_id: int, tenant_id: int, *, title: Optional[str] = None, slug: Optional[str] = None) -> dict:
        body: Dict[str, Any] = {"tenant_id": tenant_id}
        if title is not None:
            body["title"] = title
        if slug is not None:
            body["slug"] = slug
        return self._request("PATCH", f"/pages/{page_id}", json=body)

    def delete_page(self, page_id: int, tenant_id: int) -> None:
        self._request("DELETE", f"/pages/{page_id}", params={"tenant_id": tenant_id})

    def clone_page(self, page_id: int, tenant_id: int, new_slug: str, new_title: Optional[str] = None) -> dict:
        body: Dict[str, Any] = {"tenant_id": tenant_id, "new_slug": new_slug}
        if new_title is not None:
            body["new_title"] = new_title
        return self._request("POST", f"/pages/{page_id}/clone", json=body)

    # -----------------------------
    # Versions
    # -----------------------------
    def append_version(
        self,
        page_id: int,
        tenant_id: int,
        blocks: Iterable[Block | Mapping[str, Any]],
        meta: Optional[Mapping[str, Any]] = None,
    ) -> dict:
        body = {"tenant_id": tenant_id, "blocks": _block_payload(blocks), "meta": dict(meta or {})}
        return self._request("POST", f"/pages/{page_id}/versions", json=body)

    def latest_version(self, page_id: int, tenant_id: int) -> Optional[dict]:
        return self._request("GET", f"/pages/{page_id}/versions/latest", params={"tenant_id": tenant_id})

    def list_versions(self, page_id: int, tenant_id: int) -> List[dict]:
        return self._request("GET", f"/pages/{page_id}/versions", params={"tenant_id": tenant_id})

    def get_version(self, page_id: int, tenant_id: int, version_id: int) -> dict:
        return self._request("GET", f"/pages/{page_id}/versions/{version_id}", params={"tenant_id": tenant_id})

    def restore_version(self, page_id: int, tenant_id: int, version_id: int) -> dict:
        return self._request(
            "POST", f"/pages/{page_id}/versions/{version_id}/restore", json={"tenant_id": tenant_id}
        )

    # -----------------------------
    # Publish
    # -----------------------------
    def publish(self, page_id: int, tenant_id: int, live_domain: Optional[str] = None) -> dict:
        body: Dict[str, Any] = {"tenant_id": tenant_id}
        if live_domain:
            body["live_domain"] = live_domain
        return self._request("POST", f"/pages/{page_id}/publish", json=body)

    def set_draft(self, page_id: int, tenant_id: int) -> dict:
        return self._request("POST", f"/pages/{page_id}/unpublish", json={"tenant_id": tenant_id})

    # -----------------------------
    # Lectura pública
    # -----------------------------
    def fetch_published_page(self, tenant_slug: str, slug: str) -> dict:
        return self._request(
            "GET", f"/delivery/v1/tenants/{tenant_slug}/pages", api=False, params={"slug": slug}
        )

