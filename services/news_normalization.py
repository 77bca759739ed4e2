from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional
from urllib.parse import urlparse, urlunparse

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def canonicalize_url(url: str) -> str:
    """
    Identity key for deduplication.

    Lower-cases scheme and host, drops the fragment and a trailing path slash.
    Query strings are kept as-is (article ids live there).
    """
    url = (url or "").strip()
    if not url:
        return ""
    parsed = urlparse(url)
    if not parsed.netloc:
        return url
    path = parsed.path.rstrip("/") if parsed.path != "/" else ""
    return urlunparse((
        (parsed.scheme or "https").lower(),
        parsed.netloc.lower(),
        path,
        parsed.params,
        parsed.query,
        "",
    ))


def parse_pub_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 2822 date ("Mon, 06 Jan 2025 09:30:00 +0900"); None when unparseable."""
    if not value or not value.strip():
        return None
    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
