import logging
import re
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.utils import timezone

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z0-9_.]+)\s*\}\}")


def render(body: Optional[str], values: Dict[str, Any]) -> str:
    """
    Substitute `{{name}}` placeholders. Unknown names render empty, matching
    how templates behave in the admin preview. No escaping: output is chat text.
    """
    if not body:
        return body or ""

    def _sub(match):
        value = values.get(match.group(1))
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_sub, body)


def school_today(tenant):
    """Today's date on the school's wall clock (falls back to TIME_ZONE)."""
    try:
        tz = ZoneInfo(tenant.timezone) if tenant.timezone else None
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("tenant %s has an unknown timezone %r", tenant.id, tenant.timezone)
        tz = None
    return timezone.localdate(timezone=tz)


def default_values(broadcast, today=None) -> Dict[str, Any]:
    tenant = broadcast.tenant
    day = today or school_today(tenant)
    values = {
        "school_name": tenant.name,
        "date": day.isoformat(),
        "subject": broadcast.subject or "",
    }
    values.update(broadcast.placeholder_values or {})
    return values
