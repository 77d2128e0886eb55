"""Identity-field normalisation shared by models and duplicate detection."""
from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urlparse

_WHITESPACE_RE = re.compile(r"\s+")
_PROTOCOL_RE = re.compile(r"^https?://")


def trim_or_none(value: Optional[str]) -> Optional[str]:
    trimmed = (value or "").strip()
    return trimmed or None


def normalize_text(value: Optional[str]) -> str:
    """Lower-case, trim and collapse inner whitespace."""
    return _WHITESPACE_RE.sub(" ", (value or "").strip().lower())


def normalize_website(value: Optional[str]) -> str:
    """Reduce a website to ``host[/path]`` without protocol, ``www.`` or trailing slash."""
    trimmed = (value or "").strip().lower()
    if not trimmed:
        return ""

    with_protocol = trimmed if _PROTOCOL_RE.match(trimmed) else f"https://{trimmed}"
    try:
        parsed = urlparse(with_protocol)
        host = parsed.hostname or ""
    except ValueError:
        host = ""
        parsed = None

    if not host or parsed is None:
        stripped = re.sub(r"^https?://(www\.)?", "", trimmed)
        return re.sub(r"/+", "/", stripped).rstrip("/")

    if host.startswith("www."):
        host = host[4:]
    path = parsed.path.rstrip("/")
    return f"{host}{path}"


def format_location(city: Optional[str], state: Optional[str], country: Optional[str]) -> str:
    return ", ".join(part for part in (city, state, country) if part)
