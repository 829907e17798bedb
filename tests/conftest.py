# tests/conftest.py
from __future__ import annotations

from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

import sitecms.models  # noqa: F401  (registra las tablas en Base.metadata)
from sitecms.core.config import create_app
from sitecms.db.base import Base
from sitecms.db.session import build_engine, get_db
from sitecms.models.tenant import Tenant
from sitecms.services import revalidation_service


@pytest.fixture
def engine():
    """SQLite en memoria, una BD limpia por prueba (StaticPool: una sola conexión)."""
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def app(engine):
    return create_app(engine=engine)


@pytest.fixture
def db(app) -> Session:
    session = app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(app, db: Session):
    """
    Todos los endpoints usan **la misma sesión** de la prueba en curso
    (con StaticPool dos sesiones abiertas pisarían la misma transacción).
    """
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture(autouse=True)
def revalidate_calls(monkeypatch):
    """
    Nunca salir a la red: intercepta el envío del webhook y registra cada llamada.
    Las pruebas que quieran ejercitar el transporte real usan httpx.MockTransport.
    """
    calls: list[dict] = []

    def fake_deliver_with_retries(url, headers, body, timeout, max_retries, backoff_seconds, transport=None):
        calls.append({"url": url, "headers": dict(headers), "body": body})
        return True, 200

    monkeypatch.setattr(revalidation_service, "_deliver_with_retries", fake_deliver_with_retries)
    return calls


@pytest.fixture
def make_tenant(db: Session):
    def _mk(slug: str = "acme", name: Optional[str] = None, domain: Optional[str] = None) -> Tenant:
        t = Tenant(slug=slug, name=name or slug.title(), domain=domain)
        db.add(t)
        db.commit()
        return t

    return _mk
