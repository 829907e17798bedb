# sitecms/api/v1/router.py
from fastapi import APIRouter

from .endpoints import health, pages, tenants

api_router = APIRouter()
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(tenants.router)   # /tenants
api_router.include_router(pages.router)     # /pages
