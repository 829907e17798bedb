# sitecms/core/config.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from sitecms.api.delivery.router import revalidate_router, router as delivery_router
from sitecms.api.v1.router import api_router
from sitecms.core.errors import CmsError
from sitecms.db.session import build_engine, build_session_factory
from sitecms.services.delivery_cache import DeliveryCache

from .settings import Settings, settings as default_settings

log = logging.getLogger(__name__)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CmsError)
    async def _cms_error_handler(request: Request, exc: CmsError):
        if exc.status_code >= 500:
            log.warning("%s %s → %s: %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app(settings: Optional[Settings] = None, *, engine: Optional[Engine] = None) -> FastAPI:
    """
    Bootstrap: el engine/session factory se construyen AQUÍ y viven en app.state.
    Los tests pasan su propio engine (SQLite en memoria).
    """
    settings = settings or default_settings
    app = FastAPI(title=settings.APP_NAME, version="1.0.0")

    engine = engine if engine is not None else build_engine(settings.SQLALCHEMY_DATABASE_URL)
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.delivery_cache = DeliveryCache(ttl_seconds=settings.DELIVERY_CACHE_TTL_SECONDS)

    if settings.BACKEND_CORS_ORIGINS:
        origins = settings.CORS_ORIGINS
        allow_credentials = True
        if "*" in origins:
            origins = ["*"]
            allow_credentials = False
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=allow_credentials,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    _register_error_handlers(app)

    app.include_router(api_router, prefix=settings.API_V1_STR)
    app.include_router(delivery_router)
    app.include_router(revalidate_router)
    return app
