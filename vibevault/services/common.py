from urllib.parse import urlsplit, urlunsplit


def parse_link_url(url: str) -> tuple[str, str]:
    """Return ``(normalized_url, domain)`` for a submitted URL.

    The normalized form keeps scheme, host, path and query and drops the
    fragment. Raises ``ValueError`` when the URL has no scheme or host.
    """
    parsed = urlsplit((url or "").strip())
    if not parsed.scheme or not parsed.netloc or not parsed.hostname:
        raise ValueError(f"invalid URL: {url!r}")

    scheme = parsed.scheme.lower()
    netloc = parsed.netloc.lower()
    path = parsed.path or "/"
    return urlunsplit((scheme, netloc, path, parsed.query, "")), parsed.hostname


def to_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def clean_text(value) -> str | None:
    text = (value or "").strip() if isinstance(value, str) else ""
    return text or None
