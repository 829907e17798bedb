# sitecms/services/revalidation_service.py
# Webhook de revalidación hacia el sitio público del tenant (best-effort).
from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from typing import Dict, Optional, Tuple

import httpx

from sitecms.core.settings import settings

log = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Revalidate-Signature"
TIMESTAMP_HEADER = "X-Revalidate-Timestamp"


def build_revalidate_url(domain: str) -> str:
    d = domain.strip().rstrip("/")
    if d.startswith("http://") or d.startswith("https://"):
        return f"{d}{settings.REVALIDATE_PATH}"
    return f"{settings.REVALIDATE_SCHEME}://{d}{settings.REVALIDATE_PATH}"


def _sign(secret: str, timestamp: str, body_bytes: bytes) -> str:
    # Firma: SHA256-HMAC sobre "<ts>." + body
    msg = (timestamp + ".").encode("utf-8") + body_bytes
    return hmac.new(secret.encode("utf-8"), msg, hashlib.sha256).hexdigest()


def verify_signature(secret: str, timestamp: str, body_bytes: bytes, signature: str) -> bool:
    return hmac.compare_digest(_sign(secret, timestamp, body_bytes), signature or "")


def _deliver_once(
    url: str,
    headers: Dict[str, str],
    body: bytes,
    timeout: float,
    transport: Optional[httpx.BaseTransport] = None,
) -> Tuple[bool, int | None]:
    with httpx.Client(timeout=timeout, transport=transport) as client:
        resp = client.post(url, content=body, headers=headers)
        return (200 <= resp.status_code < 300, resp.status_code)


def _deliver_with_retries(
    url: str,
    headers: Dict[str, str],
    body: bytes,
    timeout: float,
    max_retries: int,
    backoff_seconds: float,
    transport: Optional[httpx.BaseTransport] = None,
) -> Tuple[bool, int | None]:
    code: int | None = None
    attempts = max(1, int(max_retries))
    for attempt in range(1, attempts + 1):
        try:
            ok, code = _deliver_once(url, headers, body, timeout, transport)
        except httpx.HTTPError as e:
            ok = False
            log.warning("revalidate %s attempt %s/%s failed: %s", url, attempt, attempts, e)
        if ok:
            return True, code
        if attempt < attempts and backoff_seconds > 0:
            time.sleep(backoff_seconds * attempt)
    return False, code


def revalidate_domain(domain: str, *, transport: Optional[httpx.BaseTransport] = None) -> bool:
    """
    POST {scheme}://{domain}/api/revalidate con {"secret", "tenantDomain"}.
    Nunca lanza: devuelve True/False y deja constancia en el log.
    """
    if not settings.REVALIDATE_ENABLED:
        return False
    if not domain or not domain.strip():
        log.warning("revalidate skipped: empty domain")
        return False

    # Cuerpo (estable, sin espacios)
    payload = {"secret": settings.REVALIDATE_SECRET, "tenantDomain": domain.strip()}
    body_bytes = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    ts = str(int(time.time()))
    headers = {
        "Content-Type": "application/json",
        TIMESTAMP_HEADER: ts,
        SIGNATURE_HEADER: _sign(settings.REVALIDATE_SECRET, ts, body_bytes),
    }
    url = build_revalidate_url(domain)

    try:
        ok, code = _deliver_with_retries(
            url=url,
            headers=headers,
            body=body_bytes,
            timeout=float(settings.REVALIDATE_TIMEOUT_SECONDS),
            max_retries=int(settings.REVALIDATE_MAX_RETRIES),
            backoff_seconds=float(settings.REVALIDATE_BACKOFF_SECONDS),
            transport=transport,
        )
    except Exception:
        # el publish ya está hecho; un revalidate roto no debe propagarse
        log.exception("revalidate %s crashed", url)
        return False

    if ok:
        log.info("revalidate %s ok (%s)", url, code)
    else:
        log.warning("revalidate %s failed (last status=%s)", url, code)
    return ok
