# scripts/create_tenant.py
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

# --- Ensure repo root is on sys.path so "sitecms.*" imports work when run as a script
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy import select
from sqlalchemy.orm import Session

from sitecms.core.settings import settings
from sitecms.db.session import build_engine, build_session_factory
from sitecms.models.tenant import Tenant
from sitecms.services.page_service import seed_default_pages


def get_or_create_tenant(db: Session, *, slug: str, name: Optional[str] = None, domain: Optional[str] = None) -> tuple[Tenant, bool]:
    """Busca por slug; si existe sólo actualiza el dominio (cuando se pasa uno)."""
    t = db.scalar(select(Tenant).where(Tenant.slug == slug))
    if t:
        if domain and t.domain != domain:
            t.domain = domain
        return t, False
    t = Tenant(slug=slug, name=name or slug, domain=domain)
    db.add(t)
    db.flush()
    return t, True


def run(
    slug: str,
    name: Optional[str] = None,
    domain: Optional[str] = None,
    database_url: Optional[str] = None,
    seed_home: bool = True,
) -> Tenant:
    engine = build_engine(database_url or settings.SQLALCHEMY_DATABASE_URL)
    factory = build_session_factory(engine)
    try:
        with factory() as db:
            t, created = get_or_create_tenant(db, slug=slug, name=name, domain=domain)
            if created and seed_home:
                seed_default_pages(db, t)
            db.commit()
            print(f"[{'OK' if created else 'EXISTS'}] Tenant id={t.id} slug={t.slug} name={t.name} domain={t.domain}")
            return t
    finally:
        engine.dispose()


def main(argv: Optional[list[str]] = None) -> None:
    ap = argparse.ArgumentParser(
        description="Create (or get) a tenant by slug.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    ap.add_argument("--slug", required=True, help="Tenant slug (e.g., acme)")
    ap.add_argument("--name", help="Display name (defaults to the slug)")
    ap.add_argument("--domain", help="Live site host used as revalidation target (e.g., www.acme.com)")
    ap.add_argument("--database-url", help="Override DATABASE_URL")
    ap.add_argument("--no-home", action="store_true", help="Do not seed the draft Home page on creation")
    args = ap.parse_args(argv)

    run(
        slug=args.slug.strip().lower(),
        name=args.name,
        domain=args.domain,
        database_url=args.database_url,
        seed_home=not args.no_home,
    )


if __name__ == "__main__":
    main()
