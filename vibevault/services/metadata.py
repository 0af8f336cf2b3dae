from __future__ import annotations

import warnings
from dataclasses import dataclass
from urllib.parse import urljoin, urlsplit

import httpx
from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning
from flask import current_app

from vibevault.extensions import db
from vibevault.models import METADATA_FAILED, METADATA_READY
from vibevault.services.links import get_link


DEFAULT_HEADERS = {
    "User-Agent": "VibeVaultBot/1.0 (+https://vibevault.local)",
    "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
}


@dataclass
class PageMetadata:
    title: str | None = None
    description: str | None = None
    og_image: str | None = None
    favicon: str | None = None
    site_name: str | None = None
    published_time: str | None = None


@dataclass
class FetchResult:
    html: str
    final_url: str
    status_code: int


def _normalize_error(exc: Exception) -> str:
    message = str(exc).strip()
    if message:
        return message
    return exc.__class__.__name__


def fetch_html(url: str, timeout: float, max_bytes: int) -> FetchResult:
    with httpx.Client(
        follow_redirects=True, timeout=timeout, headers=DEFAULT_HEADERS
    ) as client:
        with client.stream("GET", url) as response:
            chunks = []
            total = 0
            for chunk in response.iter_bytes():
                total += len(chunk)
                if total > max_bytes:
                    break
                chunks.append(chunk)
            data = b"".join(chunks)
            encoding = response.encoding or "utf-8"
            return FetchResult(
                html=data.decode(encoding, errors="ignore"),
                final_url=str(response.url),
                status_code=response.status_code,
            )


def _build_soup(html: str) -> BeautifulSoup:
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)
        return BeautifulSoup(html, "lxml")


def _meta_content(soup: BeautifulSoup, *keys: str) -> str | None:
    for key in keys:
        tag = soup.find("meta", attrs={"property": key}) or soup.find(
            "meta", attrs={"name": key}
        )
        if tag is None:
            continue
        content = tag.get("content")
        if isinstance(content, str) and content.strip():
            return content.strip()
    return None


def _favicon_href(soup: BeautifulSoup) -> str | None:
    for link in soup.find_all("link", href=True):
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        rel = {value.lower() for value in rel}
        if "icon" in rel or "apple-touch-icon" in rel:
            return link["href"].strip()
    return None


def extract_metadata(html: str, base_url: str) -> PageMetadata:
    soup = _build_soup(html)

    title = _meta_content(soup, "og:title", "twitter:title")
    if not title and soup.title and soup.title.string:
        title = soup.title.string.strip() or None

    image = _meta_content(soup, "og:image", "og:image:url", "twitter:image")
    favicon = _favicon_href(soup) or "/favicon.ico"
    parts = urlsplit(base_url)

    return PageMetadata(
        title=title,
        description=_meta_content(
            soup, "og:description", "description", "twitter:description"
        ),
        og_image=urljoin(base_url, image) if image else None,
        favicon=urljoin(base_url, favicon),
        site_name=_meta_content(soup, "og:site_name") or parts.hostname,
        published_time=_meta_content(
            soup, "article:published_time", "og:published_time", "date"
        ),
    )


def refresh_link_metadata(user_id: int | None, link_id: int):
    """Fetch the link's page and store what its head tags describe."""
    link = get_link(user_id, link_id)
    timeout = float(current_app.config["METADATA_FETCH_TIMEOUT"])
    max_bytes = int(current_app.config["METADATA_MAX_BYTES"])

    try:
        result = fetch_html(link.url, timeout=timeout, max_bytes=max_bytes)
    except httpx.HTTPError as exc:
        error = _normalize_error(exc)
        current_app.logger.warning("Metadata fetch failed for %s: %s", link.url, error)
        link.metadata_status = METADATA_FAILED
        link.metadata_error = error
        db.session.commit()
        return link

    if result.status_code >= 400:
        link.metadata_status = METADATA_FAILED
        link.metadata_error = f"HTTP {result.status_code}"
        db.session.commit()
        return link

    meta = extract_metadata(result.html, result.final_url)
    if meta.title and not link.title:
        link.title = meta.title
    link.description = meta.description or link.description
    link.og_image = meta.og_image
    link.favicon = meta.favicon
    link.site_name = meta.site_name
    link.published_time = meta.published_time
    link.metadata_status = METADATA_READY
    link.metadata_error = None
    db.session.commit()
    return link
