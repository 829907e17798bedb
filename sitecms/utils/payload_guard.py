from __future__ import annotations

import json

from sitecms.core.errors import PayloadTooLarge, ValidationError
from sitecms.core.settings import settings


def enforce_content_size(content: dict) -> None:
    """
    Enforces a maximum serialized JSON size (in KB) for a version's content.
    Raises PayloadTooLarge on overflow, or ValidationError on non-serializable content.
    """
    limit_kb = float(settings.MAX_PAGE_CONTENT_KB or 0)
    if limit_kb <= 0:
        return
    try:
        # compact JSON to measure true wire-size
        b = json.dumps(content, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError):
        raise ValidationError("Content is not JSON serializable")
    kb = len(b) / 1024.0
    if kb > limit_kb:
        raise PayloadTooLarge(f"Payload too large: content is {kb:.1f}KB, limit is {limit_kb:.0f}KB")
