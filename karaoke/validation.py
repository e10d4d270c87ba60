"""Input checks shared by the services.  All raise ``ValidationError``."""

import re
from typing import Any, Iterable, List, Optional
from urllib.parse import urlparse

from karaoke.errors import ValidationError

_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def require_id(value: Any, field: str) -> str:
    """Return *value* if it looks like a store id (uuid4 hex)."""
    if not isinstance(value, str) or not _ID_RE.match(value):
        raise ValidationError(f"Invalid {field}", field=field)
    return value


def require_text(value: Any, field: str) -> str:
    """Return the stripped string, rejecting None and blank values."""
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    return value.strip()


def optional_text(value: Any, field: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    return value.strip() or None


def validate_url(value: Any, field: str = "video_url") -> str:
    """Accept absolute http(s) URLs only."""
    text = require_text(value, field)
    parsed = urlparse(text)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"{field} must be a valid http(s) URL", field=field)
    return text


def unique_user_ids(
    user_ids: Optional[Iterable[Any]], exclude: Optional[str] = None, field: str = "co_singer_ids"
) -> List[str]:
    """De-duplicate user ids preserving first-seen order, dropping *exclude*."""
    seen: set[str] = set()
    out: List[str] = []
    for raw in user_ids or []:
        uid = require_text(raw, field)
        if uid == exclude or uid in seen:
            continue
        seen.add(uid)
        out.append(uid)
    return out


def like_pattern(query: str) -> str:
    """Wrap *query* for a substring ``LIKE ... ESCAPE '\\'`` match."""
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
