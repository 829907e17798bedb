# sitecms/schemas/delivery.py
from __future__ import annotations
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class DeliveryPageOut(BaseModel):
    tenant_slug: str
    page_id: int
    slug: str
    title: str
    status: str = Field(description="En delivery siempre será 'published'")
    version_number: int
    blocks: List[Dict[str, Any]]
    published_at: Optional[str] = None
    updated_at: Optional[str] = None


class RevalidateIn(BaseModel):
    secret: str
    tenantDomain: Optional[str] = None


class RevalidateOut(BaseModel):
    revalidated: bool
    tenant_slug: Optional[str] = None
    evicted: int = 0
