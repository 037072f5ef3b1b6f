"""Helpers that pull machine-readable detail out of rejection responses.

Servers report validation errors in a handful of common shapes; all of
them are reduced to (missing_fields, invalid_fields).
"""

import logging
import time
from email.utils import parsedate_to_datetime
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

MISSING_ERROR_TYPES = {"missing", "required", "value_error.missing", "missing_field", "field_required"}


def _field_from_loc(loc: Any) -> Optional[str]:
    """FastAPI/pydantic style: ['query', 'category'] -> 'category'."""
    if isinstance(loc, (list, tuple)) and loc:
        for part in reversed(loc):
            if isinstance(part, str) and part not in ("body", "query", "path", "header"):
                return part
        return None
    if isinstance(loc, str):
        return loc
    return None


def extract_field_errors(body: Any) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
    """Returns (missing_fields, invalid_fields) named by a 422 body.

    Recognised shapes:
        {"missing_fields": [...], "invalid_fields": [...]}
        {"errors": [{"field": "x", "type": "missing"}, ...]}
        {"detail": [{"loc": ["query", "x"], "type": "missing"}, ...]}
    """
    missing: List[str] = []
    invalid: List[str] = []
    if not isinstance(body, dict):
        return (), ()

    for key, bucket in (("missing_fields", missing), ("missing", missing), ("invalid_fields", invalid)):
        value = body.get(key)
        if isinstance(value, list):
            bucket.extend(str(item) for item in value if item)

    for key in ("errors", "detail"):
        entries = body.get(key)
        if not isinstance(entries, list):
            continue
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            name = entry.get("field") or _field_from_loc(entry.get("loc"))
            if not name:
                continue
            error_type = str(entry.get("type") or entry.get("code") or "").lower()
            if error_type in MISSING_ERROR_TYPES:
                missing.append(str(name))
            else:
                invalid.append(str(name))

    def _unique(items: List[str]) -> Tuple[str, ...]:
        return tuple(dict.fromkeys(items))

    return _unique(missing), _unique(invalid)


def parse_retry_after(value: Optional[str], clock: Callable[[], float] = time.time) -> Optional[float]:
    """Converts a Retry-After header (delta-seconds or HTTP-date) into milliseconds."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value) * 1000.0)
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug(f"Unparseable Retry-After header: {value!r}")
        return None
    if retry_at is None:
        return None
    return max(0.0, (retry_at.timestamp() - clock()) * 1000.0)
