"""Conditional retrieval helpers (ETag / Last-Modified).

The ETag is derived from ``id:version`` so it changes exactly when the row is
mutated. ``If-None-Match`` takes precedence over ``If-Modified-Since``
(RFC 9110 section 13.2.2).
"""
from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Optional

from report_trust.models.db import Report
from report_trust.utils.time import as_utc


def compute_etag(report: Report) -> str:
    digest = hashlib.md5(f"{report.id}:{report.version}".encode("utf-8")).hexdigest()
    return f'"{digest}"'


def last_modified(report: Report) -> str:
    return format_datetime(as_utc(report.updated_at).replace(microsecond=0), usegmt=True)


def _etag_matches(etag: str, header: str) -> bool:
    candidates = [c.strip() for c in header.split(",") if c.strip()]
    if "*" in candidates:
        return True
    # weak comparison: W/"x" matches "x"
    normalized = {c[2:] if c.startswith("W/") else c for c in candidates}
    return etag in normalized


def _parse_http_date(value: str) -> Optional[datetime]:
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_not_modified(
    report: Report,
    if_none_match: Optional[str] = None,
    if_modified_since: Optional[str] = None,
) -> bool:
    """True when the caller's cached copy is still current (respond 304)."""
    if if_none_match:
        return _etag_matches(compute_etag(report), if_none_match)
    if if_modified_since:
        since = _parse_http_date(if_modified_since)
        if since is None:
            return False
        # HTTP dates carry whole seconds only
        return as_utc(report.updated_at).replace(microsecond=0) <= since
    return False


__all__ = ["compute_etag", "last_modified", "is_not_modified"]
