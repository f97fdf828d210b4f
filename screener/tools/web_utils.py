from __future__ import annotations

import re
from urllib.parse import urlsplit

_SCHEME_RE = re.compile(r"^https?://")


def extract_domain(url: str) -> str:
    """Extract the bare host (no ``www.``) from a URL or normalized key."""
    return normalize_url(url).split("/", 1)[0]


def normalize_url(uri: str) -> str:
    """Canonical host+path key used to spot duplicate citations.

    Host is lower-cased without ``www.``; query, fragment and one trailing
    slash are dropped. Strings without a scheme, or that fail to parse,
    get the same treatment textually.
    """
    try:
        parsed = urlsplit(uri)
        host = parsed.hostname
    except ValueError:
        parsed, host = None, None

    if parsed is None or not parsed.scheme:
        return _normalize_text(uri)

    # Host-less schemes (mailto:, urn:) keep just their path.
    host = host or ""
    if host.startswith("www."):
        host = host[4:]
    path = parsed.path[:-1] if parsed.path.endswith("/") else parsed.path
    return f"{host}{path}"


def _normalize_text(uri: str) -> str:
    text = _SCHEME_RE.sub("", uri.lower())
    if text.startswith("www."):
        text = text[4:]
    text = text.split("?")[0].split("#")[0]
    return text[:-1] if text.endswith("/") else text
