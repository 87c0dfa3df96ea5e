import re
from urllib.parse import urlparse

from msamiati.domain.constants import TOMBSTONE_PREFIX

# ---------- Injection screening ----------

DANGEROUS_PATTERNS = [
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),  # onclick=, onerror=, ...
    re.compile(r"data:", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"<iframe", re.IGNORECASE),
    re.compile(r"<object", re.IGNORECASE),
    re.compile(r"<embed", re.IGNORECASE),
    re.compile(r"<form", re.IGNORECASE),
    re.compile(r"expression\s*\(", re.IGNORECASE),
    re.compile(r"url\s*\(", re.IGNORECASE),
]


def contains_dangerous_pattern(text: str | None) -> bool:
    """True if the text looks like markup or script injection."""
    if not text:
        return False
    return any(p.search(text) for p in DANGEROUS_PATTERNS)


def is_valid_url(url: str) -> bool:
    """Only plain http(s) URLs with a host are accepted for media links."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


# ---------- Tombstones ----------


def is_tombstone(word: str | None) -> bool:
    """Soft-deleted catalog rows carry a reserved prefix on their word."""
    return bool(word) and word.startswith(TOMBSTONE_PREFIX)


# ---------- Display ----------


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."
