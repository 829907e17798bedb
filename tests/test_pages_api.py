# tests/test_pages_api.py
from fastapi.testclient import TestClient

from sitecms.core.settings import settings

API = settings.API_V1_STR


def _mk_page(client: TestClient, tenant_id: int, slug="/about", title="About"):
    r = client.post(f"{API}/pages", json={"tenant_id": tenant_id, "title": title, "slug": slug})
    assert r.status_code == 201, r.text
    return r.json()


def _append(client: TestClient, page_id: int, tenant_id: int, blocks):
    r = client.post(f"{API}/pages/{page_id}/versions", json={"tenant_id": tenant_id, "blocks": blocks})
    assert r.status_code == 201, r.text
    return r.json()


HERO = {"type": "hero", "properties": {"title": "Hi"}}
CTA = {"type": "cta", "properties": {"title": "Join", "buttonLabel": "Go", "buttonLink": "/join"}}


def test_about_page_scenario(client: TestClient, make_tenant):
    t = make_tenant("acme", domain="www.acme.test")
    page = _mk_page(client, t.id)
    assert page["status"] == "draft"

    v1 = _append(client, page["id"], t.id, [HERO])
    assert v1["version_number"] == 1
    v2 = _append(client, page["id"], t.id, [HERO, CTA])
    assert v2["version_number"] == 2

    r = client.get(f"{API}/pages/{page['id']}/versions", params={"tenant_id": t.id})
    assert [v["version_number"] for v in r.json()] == [2, 1]

    # draft: invisible en la lectura pública
    r = client.get("/delivery/v1/tenants/acme/pages", params={"slug": "/about"})
    assert r.status_code == 404

    r = client.post(f"{API}/pages/{page['id']}/publish", json={"tenant_id": t.id})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "published"

    r = client.get("/delivery/v1/tenants/acme/pages", params={"slug": "/about"})
    assert r.status_code == 200
    body = r.json()
    assert body["version_number"] == 2
    assert [b["type"] for b in body["blocks"]] == ["hero", "cta"]

    r = client.post(f"{API}/pages/{page['id']}/unpublish", json={"tenant_id": t.id})
    assert r.json()["status"] == "draft"

    r = client.get("/delivery/v1/tenants/acme/pages", params={"slug": "/about"})
    assert r.status_code == 404

    # el editor sigue viendo la última versión
    r = client.get(f"{API}/pages/{page['id']}/versions/latest", params={"tenant_id": t.id})
    assert r.status_code == 200
    latest = r.json()
    assert latest["version_number"] == 2
    assert len(latest["blocks"]) == 2


def test_latest_version_is_null_for_a_fresh_page(client: TestClient, make_tenant):
    t = make_tenant()
    page = _mk_page(client, t.id)
    r = client.get(f"{API}/pages/{page['id']}/versions/latest", params={"tenant_id": t.id})
    assert r.status_code == 200
    assert r.json() is None

    r = client.get(f"{API}/pages/{page['id']}", params={"tenant_id": t.id})
    assert r.status_code == 200
    assert r.json()["latest_version"] is None
    assert r.headers["Cache-Control"] == "no-store"


def test_create_page_validation(client: TestClient, make_tenant):
    t = make_tenant()
    _mk_page(client, t.id, slug="/about")

    r = client.post(f"{API}/pages", json={"tenant_id": t.id, "title": "Dup", "slug": "/about"})
    assert r.status_code == 422
    assert "already in use" in r.json()["detail"]

    r = client.post(f"{API}/pages", json={"tenant_id": t.id, "title": "Bad", "slug": "Not A Slug"})
    assert r.status_code == 422

    r = client.post(f"{API}/pages", json={"tenant_id": t.id, "title": "   ", "slug": "/ok"})
    assert r.status_code == 422

    r = client.post(f"{API}/pages", json={"tenant_id": 9999, "title": "X", "slug": "/x"})
    assert r.status_code == 404

    # nada quedó a medias
    r = client.get(f"{API}/pages", params={"tenant_id": t.id})
    assert [p["slug"] for p in r.json()] == ["/about"]


def test_same_slug_is_allowed_in_different_tenants(client: TestClient, make_tenant):
    a, b = make_tenant("acme"), make_tenant("globex")
    _mk_page(client, a.id, slug="/about")
    _mk_page(client, b.id, slug="/about")


def test_cross_tenant_access_is_not_found(client: TestClient, make_tenant):
    a, b = make_tenant("acme"), make_tenant("globex")
    page = _mk_page(client, a.id)
    v1 = _append(client, page["id"], a.id, [HERO])

    for method, url, kwargs in [
        ("GET", f"{API}/pages/{page['id']}", {"params": {"tenant_id": b.id}}),
        ("GET", f"{API}/pages/{page['id']}/versions/latest", {"params": {"tenant_id": b.id}}),
        ("GET", f"{API}/pages/{page['id']}/versions/{v1['id']}", {"params": {"tenant_id": b.id}}),
        ("POST", f"{API}/pages/{page['id']}/versions", {"json": {"tenant_id": b.id, "blocks": [HERO]}}),
        ("POST", f"{API}/pages/{page['id']}/versions/{v1['id']}/restore", {"json": {"tenant_id": b.id}}),
        ("POST", f"{API}/pages/{page['id']}/publish", {"json": {"tenant_id": b.id}}),
        ("POST", f"{API}/pages/{page['id']}/clone", {"json": {"tenant_id": b.id, "new_slug": "/copy"}}),
        ("DELETE", f"{API}/pages/{page['id']}", {"params": {"tenant_id": b.id}}),
    ]:
        r = client.request(method, url, **kwargs)
        assert r.status_code == 404, (method, url, r.text)
        assert r.json()["detail"] == "Page not found"

    # sigue intacta para su dueño
    r = client.get(f"{API}/pages/{page['id']}/versions", params={"tenant_id": a.id})
    assert len(r.json()) == 1


def test_restore_endpoint_creates_new_head(client: TestClient, make_tenant):
    t = make_tenant()
    page = _mk_page(client, t.id)
    v1 = _append(client, page["id"], t.id, [HERO, CTA])
    _append(client, page["id"], t.id, [HERO])

    r = client.post(f"{API}/pages/{page['id']}/versions/{v1['id']}/restore", json={"tenant_id": t.id})
    assert r.status_code == 201, r.text
    v3 = r.json()
    assert v3["version_number"] == 3
    assert v3["meta"]["restored_from"] == v1["id"]
    assert v3["blocks"] == v1["blocks"]

    r = client.post(f"{API}/pages/{page['id']}/versions/424242/restore", json={"tenant_id": t.id})
    assert r.status_code == 404
    assert r.json()["detail"] == "Version not found"


def test_publish_requires_saved_content(client: TestClient, make_tenant):
    t = make_tenant()
    page = _mk_page(client, t.id)
    r = client.post(f"{API}/pages/{page['id']}/publish", json={"tenant_id": t.id})
    assert r.status_code == 422
    r = client.get(f"{API}/pages/{page['id']}", params={"tenant_id": t.id})
    assert r.json()["status"] == "draft"


def test_publish_dispatches_revalidation(client: TestClient, make_tenant, revalidate_calls):
    t = make_tenant("acme", domain="www.acme.test")
    page = _mk_page(client, t.id)
    _append(client, page["id"], t.id, [HERO])

    r = client.post(f"{API}/pages/{page['id']}/publish", json={"tenant_id": t.id})
    assert r.status_code == 200
    assert len(revalidate_calls) == 1
    assert revalidate_calls[0]["url"] == "https://www.acme.test/api/revalidate"

    # unpublish no llama al webhook
    client.post(f"{API}/pages/{page['id']}/unpublish", json={"tenant_id": t.id})
    assert len(revalidate_calls) == 1


def test_publish_succeeds_when_revalidation_fails(client: TestClient, make_tenant, monkeypatch):
    from sitecms.services import revalidation_service

    def failing(*args, **kwargs):
        return False, 502

    monkeypatch.setattr(revalidation_service, "_deliver_with_retries", failing)
    t = make_tenant("acme", domain="www.acme.test")
    page = _mk_page(client, t.id)
    _append(client, page["id"], t.id, [HERO])

    r = client.post(f"{API}/pages/{page['id']}/publish", json={"tenant_id": t.id})
    assert r.status_code == 200
    r = client.get("/delivery/v1/tenants/acme/pages", params={"slug": "/about"})
    assert r.status_code == 200


def test_update_page_title_and_slug(client: TestClient, make_tenant):
    t = make_tenant()
    page = _mk_page(client, t.id)
    _mk_page(client, t.id, slug="/taken", title="Taken")

    r = client.patch(f"{API}/pages/{page['id']}", json={"tenant_id": t.id, "title": "About us", "slug": "/about-us"})
    assert r.status_code == 200, r.text
    assert r.json()["title"] == "About us"
    assert r.json()["slug"] == "/about-us"

    r = client.patch(f"{API}/pages/{page['id']}", json={"tenant_id": t.id, "slug": "/taken"})
    assert r.status_code == 422

    r = client.get(f"{API}/pages/by-slug", params={"tenant_id": t.id, "slug": "/about-us"})
    assert r.status_code == 200
    assert r.json()["id"] == page["id"]


def test_delete_page_cascades_versions(client: TestClient, make_tenant, db):
    from sitecms.models.page import PageVersion

    t = make_tenant()
    page = _mk_page(client, t.id)
    _append(client, page["id"], t.id, [HERO])
    _append(client, page["id"], t.id, [HERO, CTA])

    r = client.delete(f"{API}/pages/{page['id']}", params={"tenant_id": t.id})
    assert r.status_code == 204
    r = client.get(f"{API}/pages/{page['id']}", params={"tenant_id": t.id})
    assert r.status_code == 404
    assert db.query(PageVersion).filter(PageVersion.page_id == page["id"]).count() == 0


def test_clone_page(client: TestClient, make_tenant):
    t = make_tenant()
    page = _mk_page(client, t.id)
    _append(client, page["id"], t.id, [HERO])
    v2 = _append(client, page["id"], t.id, [HERO, CTA])
    client.post(f"{API}/pages/{page['id']}/publish", json={"tenant_id": t.id})

    r = client.post(f"{API}/pages/{page['id']}/clone", json={"tenant_id": t.id, "new_slug": "/about-copy"})
    assert r.status_code == 201, r.text
    clone = r.json()
    assert clone["status"] == "draft"
    assert clone["title"] == "About (Copy)"
    assert clone["slug"] == "/about-copy"

    seed = clone["latest_version"]
    assert seed["version_number"] == 1
    assert seed["meta"] == {"cloned_from": v2["id"]}
    assert [b["type"] for b in seed["blocks"]] == ["hero", "cta"]
    assert [b["properties"] for b in seed["blocks"]] == [b["properties"] for b in v2["blocks"]]
    # ids nuevos
    assert {b["id"] for b in seed["blocks"]}.isdisjoint({b["id"] for b in v2["blocks"]})


def test_clone_of_empty_page_seeds_empty_version(client: TestClient, make_tenant):
    t = make_tenant()
    page = _mk_page(client, t.id)
    r = client.post(
        f"{API}/pages/{page['id']}/clone",
        json={"tenant_id": t.id, "new_slug": "/blank", "new_title": "Blank"},
    )
    assert r.status_code == 201
    assert r.json()["title"] == "Blank"
    assert r.json()["latest_version"]["blocks"] == []


def test_clone_with_taken_slug_leaves_nothing_behind(client: TestClient, make_tenant):
    t = make_tenant()
    page = _mk_page(client, t.id)
    _append(client, page["id"], t.id, [HERO])
    r = client.post(f"{API}/pages/{page['id']}/clone", json={"tenant_id": t.id, "new_slug": "/about"})
    assert r.status_code == 422
    r = client.get(f"{API}/pages", params={"tenant_id": t.id})
    assert len(r.json()) == 1


def test_append_with_unknown_and_malformed_blocks_never_fails(client: TestClient, make_tenant):
    t = make_tenant()
    page = _mk_page(client, t.id)
    v = _append(client, page["id"], t.id, [
        HERO,
        {"type": "marquee", "properties": {"speed": 2}},
        {"type": "posts-feed", "properties": {"limit": "lots"}},
    ])
    assert [b["type"] for b in v["blocks"]] == ["hero", "marquee", "posts-feed"]
    assert v["blocks"][2]["properties"] == {"limit": "lots"}


def test_oversize_append_is_413(client: TestClient, make_tenant, monkeypatch):
    monkeypatch.setattr(settings, "MAX_PAGE_CONTENT_KB", 1)
    t = make_tenant()
    page = _mk_page(client, t.id)
    r = client.post(
        f"{API}/pages/{page['id']}/versions",
        json={"tenant_id": t.id, "blocks": [{"type": "hero", "properties": {"title": "x" * 5000}}]},
    )
    assert r.status_code == 413


def test_append_rejects_provenance_meta_keys(client: TestClient, make_tenant):
    t = make_tenant()
    page = _mk_page(client, t.id)
    for key in ("restored_from", "restored_at", "cloned_from"):
        r = client.post(
            f"{API}/pages/{page['id']}/versions",
            json={"tenant_id": t.id, "blocks": [HERO], "meta": {key: 1}},
        )
        assert r.status_code == 422, key

    r = client.post(
        f"{API}/pages/{page['id']}/versions",
        json={"tenant_id": t.id, "blocks": [HERO], "meta": {"source": "import"}},
    )
    assert r.status_code == 201
    assert r.json()["meta"] == {"source": "import"}
    r = client.get(f"{API}/pages/{page['id']}/versions", params={"tenant_id": t.id})
    assert len(r.json()) == 1


def test_restore_of_cloned_seed_drops_clone_provenance(client: TestClient, make_tenant):
    t = make_tenant()
    page = _mk_page(client, t.id)
    _append(client, page["id"], t.id, [HERO])
    clone = client.post(
        f"{API}/pages/{page['id']}/clone", json={"tenant_id": t.id, "new_slug": "/about-copy"}
    ).json()
    seed = clone["latest_version"]
    _append(client, clone["id"], t.id, [CTA])

    r = client.post(f"{API}/pages/{clone['id']}/versions/{seed['id']}/restore", json={"tenant_id": t.id})
    assert r.status_code == 201
    assert set(r.json()["meta"]) == {"restored_from", "restored_at"}
    assert r.json()["meta"]["restored_from"] == seed["id"]
