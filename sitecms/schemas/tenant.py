# sitecms/schemas/tenant.py
from __future__ import annotations
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TenantCreate(BaseModel):
    slug: str = Field(..., min_length=1, max_length=80)
    name: str = Field(..., min_length=1, max_length=160)
    domain: Optional[str] = Field(None, max_length=255)
    # Home "/" en draft con v1 (hero + posts-feed)
    seed_default_pages: bool = True


class TenantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    slug: str
    name: str
    domain: Optional[str] = None
    created_at: datetime
