from __future__ import annotations

from sitecms.core.config import create_app
from sitecms.core.logging import configure_logging
from sitecms.core.settings import settings

configure_logging(settings.LOG_LEVEL)
app = create_app()
