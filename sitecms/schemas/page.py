# sitecms/schemas/page.py
# Pydantic: requests/responses para Pages y Versions
from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from sitecms.blocks import block_to_dict, blocks_from_content
from sitecms.services.version_store import RESERVED_META_KEYS

PageStatusLiteral = Literal["draft", "published"]


# ---------- Page ----------
class PageCreate(BaseModel):
    tenant_id: int
    title: str = Field(..., max_length=200)
    # las reglas de formato las aplica page_service (→ 422 con mensaje claro)
    slug: str = Field(..., max_length=128)


class PageUpdate(BaseModel):
    tenant_id: int
    title: Optional[str] = Field(None, max_length=200)
    slug: Optional[str] = Field(None, max_length=128)

    model_config = ConfigDict(extra="ignore")


class PageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    tenant_id: int
    slug: str
    title: str
    status: PageStatusLiteral
    published_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# ---------- Version ----------
class VersionAppend(BaseModel):
    tenant_id: int
    # lista cruda: sitecms.blocks la parsea en modo tolerante
    blocks: List[Dict[str, Any]] = Field(default_factory=list)
    meta: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("meta")
    @classmethod
    def _no_provenance_keys(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        # la procedencia (restore/clone) sólo la escribe el servidor
        taken = sorted(RESERVED_META_KEYS.intersection(v))
        if taken:
            raise ValueError(f"meta keys are reserved: {', '.join(taken)}")
        return v


class VersionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    page_id: int
    tenant_id: int
    version_number: int
    blocks: List[Dict[str, Any]] = Field(default_factory=list)
    meta: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @model_validator(mode="before")
    @classmethod
    def _blocks_from_content(cls, data: Any) -> Any:
        # desde ORM: content={"blocks": [...]} → blocks=[...]
        if isinstance(data, dict):
            return data
        return {
            "id": data.id,
            "page_id": data.page_id,
            "tenant_id": data.tenant_id,
            "version_number": data.version_number,
            "blocks": [block_to_dict(b) for b in blocks_from_content(data.content)],
            "meta": data.meta or {},
            "created_at": data.created_at,
        }


class PageWithContentOut(PageOut):
    latest_version: Optional[VersionOut] = None


# ---------- Acciones ----------
class TenantScoped(BaseModel):
    tenant_id: int


class PublishIn(TenantScoped):
    live_domain: Optional[str] = Field(None, max_length=255)


class CloneIn(TenantScoped):
    new_slug: str = Field(..., max_length=128)
    new_title: Optional[str] = Field(None, max_length=200)
