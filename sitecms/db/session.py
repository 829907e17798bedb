# sitecms/db/session.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Iterator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


def _normalize_sqlalchemy_url(url: str) -> str:
    """
    Normalize any Heroku-style or generic Postgres URL to the explicit
    SQLAlchemy driver we have installed (psycopg2-binary).
    """
    if not url:
        return url
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg2://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg2://", 1)
    if url.startswith("postgresql+psycopg://"):
        return url.replace("postgresql+psycopg://", "postgresql+psycopg2://", 1)
    return url


def _configure_sqlite(engine: Engine) -> None:
    """
    pysqlite no emite BEGIN por su cuenta antes de un SAVEPOINT, lo que rompe
    begin_nested(). Receta de la doc de SQLAlchemy: desactivar el manejo
    transaccional del driver y emitir BEGIN nosotros. Además activamos FKs
    para que ON DELETE CASCADE funcione igual que en Postgres.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str) -> Engine:
    url = _normalize_sqlalchemy_url(url)
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        # Base en memoria: una sola conexión compartida o cada checkout vería una BD vacía
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)
        _configure_sqlite(engine)
        return engine

    return create_engine(
        url,
        pool_pre_ping=True,
        pool_recycle=1800,  # keep connections fresh on Heroku
    )


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db(request: Request) -> Iterator[Session]:
    """
    Dependencia FastAPI: una sesión por request, creada con la factory que
    create_app() dejó en app.state (no hay engine global a nivel de módulo).
    """
    factory: sessionmaker[Session] = request.app.state.session_factory
    db = factory()
    try:
        yield db
    finally:
        db.close()


# -----------------------------
# Transacción por operación
# -----------------------------
_AFTER_COMMIT_KEY = "sitecms.after_commit"


def run_after_commit(db: Session, fn: Callable[..., Any], *args: Any) -> None:
    """
    Difiere `fn(*args)` hasta que `committing(db)` haya hecho commit.
    Si la transacción se revierte, se descarta.
    """
    db.info.setdefault(_AFTER_COMMIT_KEY, []).append((fn, args))


@contextmanager
def committing(db: Session) -> Iterator[Session]:
    """
    Una operación = una transacción. Ante cualquier error se hace rollback y
    se re-lanza; lo diferido con run_after_commit corre sólo tras el commit.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        db.info.pop(_AFTER_COMMIT_KEY, None)
        raise
    for fn, args in db.info.pop(_AFTER_COMMIT_KEY, []):
        fn(*args)
