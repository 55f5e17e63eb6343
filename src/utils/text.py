"""Text utility functions."""

import re
from typing import Optional
from urllib.parse import urlparse

_WHITESPACE = re.compile(r"\s+")


def normalize_query(query: str) -> str:
    """Trim, collapse whitespace and lower-case a search query."""
    return _WHITESPACE.sub(" ", query.strip()).lower()


def extract_storage_key(url: str) -> Optional[str]:
    """Return the object key of a (signed) storage URL, i.e. its path without the leading slash."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    key = parsed.path.lstrip("/")
    return key or None
