# tests/test_delivery.py
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from sitecms.core.errors import NotFoundError
from sitecms.core.settings import settings
from sitecms.db.base import Base
from sitecms.db.session import build_engine, build_session_factory, committing
from sitecms.models.page import Page
from sitecms.models.tenant import Tenant
from sitecms.services.delivery_cache import DeliveryCache
from sitecms.services.delivery_service import cache_invalidator, fetch_published_page
from sitecms.services.page_service import create_page
from sitecms.services.publish_service import publish, set_draft
from sitecms.services.tenant_guard import get_page_for_tenant
from sitecms.services.version_store import VersionStore

URL = "/delivery/v1/tenants/{tenant}/pages"


def _published_page(db: Session, tenant_id: int, slug="/", blocks=None):
    page = create_page(db, tenant_id=tenant_id, title="Home", slug=slug)
    VersionStore(db).append(page.id, tenant_id, blocks or [{"type": "hero", "properties": {"title": "Hola"}}])
    publish(db, page.id, tenant_id)
    db.commit()
    return page


def test_published_page_is_served_with_cache_headers(client: TestClient, db: Session, make_tenant):
    t = make_tenant("latente")
    _published_page(db, t.id)

    r = client.get(URL.format(tenant="latente"), params={"slug": "/"})
    assert r.status_code == 200
    body = r.json()
    assert body["tenant_slug"] == "latente"
    assert body["status"] == "published"
    assert body["blocks"][0]["properties"]["title"] == "Hola"
    assert r.headers.get("ETag")
    assert r.headers.get("Last-Modified")
    assert "max-age=60" in r.headers.get("Cache-Control", "")


def test_if_none_match_returns_304(client: TestClient, db: Session, make_tenant):
    t = make_tenant("latente")
    _published_page(db, t.id)

    r1 = client.get(URL.format(tenant="latente"), params={"slug": "/"})
    etag = r1.headers["ETag"]
    r2 = client.get(URL.format(tenant="latente"), params={"slug": "/"}, headers={"If-None-Match": etag})
    assert r2.status_code == 304
    assert r2.headers["ETag"] == etag


def test_if_modified_since_returns_304(client: TestClient, db: Session, make_tenant):
    t = make_tenant("latente")
    _published_page(db, t.id)

    r1 = client.get(URL.format(tenant="latente"), params={"slug": "/"})
    r2 = client.get(
        URL.format(tenant="latente"), params={"slug": "/"},
        headers={"If-Modified-Since": r1.headers["Last-Modified"]},
    )
    assert r2.status_code == 304


def test_unknown_blocks_are_not_delivered(client: TestClient, db: Session, make_tenant):
    t = make_tenant("latente")
    _published_page(db, t.id, blocks=[
        {"type": "hero", "properties": {"title": "A"}},
        {"type": "marquee", "properties": {}},
        {"type": "cta", "properties": {}},
    ])
    r = client.get(URL.format(tenant="latente"), params={"slug": "/"})
    assert [b["type"] for b in r.json()["blocks"]] == ["hero", "cta"]


def test_draft_unknown_and_foreign_pages_are_404(client: TestClient, db: Session, make_tenant):
    a = make_tenant("acme")
    make_tenant("globex")
    _published_page(db, a.id, slug="/about")
    draft = create_page(db, tenant_id=a.id, title="Draft", slug="/draft")
    VersionStore(db).append(draft.id, a.id, [{"type": "hero", "properties": {}}])
    db.commit()

    assert client.get(URL.format(tenant="acme"), params={"slug": "/draft"}).status_code == 404
    assert client.get(URL.format(tenant="acme"), params={"slug": "/nope"}).status_code == 404
    assert client.get(URL.format(tenant="globex"), params={"slug": "/about"}).status_code == 404
    assert client.get(URL.format(tenant="nobody"), params={"slug": "/about"}).status_code == 404


def test_new_version_invalidates_cached_page(client: TestClient, db: Session, make_tenant, app):
    t = make_tenant("latente")
    page = _published_page(db, t.id)
    cache = app.state.delivery_cache

    r1 = client.get(URL.format(tenant="latente"), params={"slug": "/"})
    assert r1.json()["version_number"] == 1
    assert len(cache) == 1

    r = client.post(
        f"{settings.API_V1_STR}/pages/{page.id}/versions",
        json={"tenant_id": t.id, "blocks": [{"type": "cta", "properties": {"title": "New"}}]},
    )
    assert r.status_code == 201
    assert len(cache) == 0

    r2 = client.get(URL.format(tenant="latente"), params={"slug": "/"})
    assert r2.json()["version_number"] == 2
    assert r2.headers["ETag"] != r1.headers["ETag"]


def test_slug_change_evicts_old_slug(client: TestClient, db: Session, make_tenant):
    t = make_tenant("latente")
    page = _published_page(db, t.id, slug="/about")
    assert client.get(URL.format(tenant="latente"), params={"slug": "/about"}).status_code == 200

    r = client.patch(f"{settings.API_V1_STR}/pages/{page.id}", json={"tenant_id": t.id, "slug": "/team"})
    assert r.status_code == 200
    assert client.get(URL.format(tenant="latente"), params={"slug": "/about"}).status_code == 404
    assert client.get(URL.format(tenant="latente"), params={"slug": "/team"}).status_code == 200


def test_revalidate_endpoint_checks_secret_and_clears_tenant(client: TestClient, db: Session, make_tenant, app):
    a = make_tenant("acme", domain="www.acme.test")
    b = make_tenant("globex", domain="www.globex.test")
    _published_page(db, a.id)
    _published_page(db, b.id)
    client.get(URL.format(tenant="acme"), params={"slug": "/"})
    client.get(URL.format(tenant="globex"), params={"slug": "/"})
    cache = app.state.delivery_cache
    assert len(cache) == 2

    r = client.post("/api/revalidate", json={"secret": "wrong", "tenantDomain": "www.acme.test"})
    assert r.status_code == 401
    assert len(cache) == 2

    r = client.post("/api/revalidate", json={"secret": settings.REVALIDATE_SECRET, "tenantDomain": "www.acme.test"})
    assert r.status_code == 200
    assert r.json() == {"revalidated": True, "tenant_slug": "acme", "evicted": 1}
    assert cache.get(b.id, "/") is not None

    r = client.post("/api/revalidate", json={"secret": settings.REVALIDATE_SECRET, "tenantDomain": "unknown.test"})
    assert r.json()["evicted"] == 1
    assert len(cache) == 0


def test_set_draft_evicts_cache_only_after_commit(tmp_path):
    # BD en archivo: cada sesión ve sólo lo comprometido por la otra
    engine = build_engine(f"sqlite:///{tmp_path / 'cms.db'}")
    Base.metadata.create_all(engine)
    factory = build_session_factory(engine)
    cache = DeliveryCache(ttl_seconds=60)
    try:
        with factory() as setup:
            t = Tenant(slug="acme", name="Acme")
            setup.add(t)
            setup.flush()
            page = _published_page(setup, t.id, slug="/about")
            tenant_id, page_id = t.id, page.id

        writer = factory()
        with committing(writer):
            set_draft(writer, page_id, tenant_id, invalidator=cache_invalidator(cache, writer))
            # un lector público entre el cambio y el commit cachea lo comprometido
            with factory() as reader:
                assert fetch_published_page(reader, "acme", "/about", cache=cache)["status"] == "published"
            assert len(cache) == 1
        writer.close()

        assert len(cache) == 0
        with factory() as reader:
            with pytest.raises(NotFoundError):
                fetch_published_page(reader, "acme", "/about", cache=cache)
    finally:
        engine.dispose()


def test_rolled_back_write_does_not_evict(db: Session, make_tenant, app):
    t = make_tenant("acme")
    _published_page(db, t.id, slug="/about")
    cache = app.state.delivery_cache
    fetch_published_page(db, "acme", "/about", cache=cache)
    page = db.scalar(select(Page).where(Page.slug == "/about"))

    with pytest.raises(NotFoundError):
        with committing(db):
            set_draft(db, page.id, t.id, invalidator=cache_invalidator(cache, db))
            get_page_for_tenant(db, 99999, t.id)

    assert len(cache) == 1
    assert fetch_published_page(db, "acme", "/about", cache=cache)["status"] == "published"
