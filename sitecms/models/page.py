# sitecms/models/page.py
# Modelos de páginas: Page (handle con status) y PageVersion (snapshots inmutables)
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    DateTime, Enum, ForeignKey, Index, Integer, String, UniqueConstraint, func
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sitecms.db.base import Base, JSONType
from sitecms.models.tenant import Tenant

PAGE_STATUSES = ("draft", "published")

PageStatus = Enum(
    *PAGE_STATUSES,
    name="page_status",
    create_constraint=True,
    validate_strings=True,
    native_enum=False,
)


class Page(Base):
    __tablename__ = "pages"

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), index=True)

    slug: Mapped[str] = mapped_column(String(128))   # único por tenant ("/", "/about", "page-123")
    title: Mapped[str] = mapped_column(String(200))
    status: Mapped[str] = mapped_column(PageStatus, default="draft")

    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="pages")
    # El orden aquí es informativo; las consultas del VersionStore ordenan explícitamente
    versions: Mapped[list["PageVersion"]] = relationship(
        "PageVersion",
        back_populates="page",
        cascade="all, delete-orphan",
        order_by="PageVersion.version_number",
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "slug", name="uq_page_tenant_slug"),
        Index("ix_pages_tenant_status", "tenant_id", "status"),
    )


class PageVersion(Base):
    __tablename__ = "page_versions"

    id: Mapped[int] = mapped_column(primary_key=True)
    page_id: Mapped[int] = mapped_column(ForeignKey("pages.id", ondelete="CASCADE"), index=True)
    # denormalizado para el chequeo de aislamiento
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), index=True)

    version_number: Mapped[int] = mapped_column(Integer)   # >= 1, estrictamente creciente por página
    content: Mapped[dict[str, Any]] = mapped_column(JSONType)           # {"blocks": [...]}
    meta: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)  # {"restored_from": ..., ...}

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    page: Mapped["Page"] = relationship("Page", back_populates="versions")

    __table_args__ = (
        UniqueConstraint("page_id", "version_number", name="uq_page_version_number"),
        Index("ix_page_versions_tenant_page_number", "tenant_id", "page_id", "version_number"),
    )
