# Importa todos los modelos para poblar Base.metadata (Alembic / create_all)
from sitecms.models.tenant import Tenant  # noqa: F401
from sitecms.models.page import Page, PageVersion, PAGE_STATUSES  # noqa: F401
