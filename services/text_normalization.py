from __future__ import annotations

import re
from typing import Optional

_HTML_TAG_RE = re.compile(r"<[^>]*>")

# Only the entities the search API actually emits. Tags are stripped first so an
# encoded "&lt;b&gt;" survives as literal text; "&amp;" goes last so "&amp;lt;"
# decodes once, to "&lt;".
_ENTITIES = (
    ("&quot;", '"'),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&nbsp;", " "),
    ("&amp;", "&"),
)


def strip_html(value: Optional[str]) -> str:
    """Remove markup tags, decode the supported entities and trim surrounding whitespace."""
    if not value:
        return ""
    text = _HTML_TAG_RE.sub("", value)
    for entity, replacement in _ENTITIES:
        text = text.replace(entity, replacement)
    return text.strip()


def collapse_whitespace(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def truncate(value: str, max_chars: int) -> str:
    if max_chars <= 0 or len(value) <= max_chars:
        return value
    return value[:max_chars]
