from __future__ import annotations

import re
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

SITE_DOMAIN = "dubizzle.com"
DEFAULT_EMIRATE = "dubai"

# /jobs/<category-slug>/<id>... or /jobs/<id>...
_DETAIL_PATH_RE = re.compile(r"/jobs/[^/]+/\d+|/jobs/\d+")
_PAGE_QUERY_RE = re.compile(r"(?:^|&)page=")


def site_base(emirate: Optional[str] = None) -> str:
    sub = (emirate or DEFAULT_EMIRATE).strip().lower() or DEFAULT_EMIRATE
    return f"https://{sub}.{SITE_DOMAIN}"


def slugify(value: str) -> str:
    return re.sub(r"\s+", "-", value.strip().lower())


def to_absolute(href: Optional[str], base: str) -> Optional[str]:
    """Resolve `href` against `base`; return None unless the result is a usable http(s) URL."""

    if not href or not isinstance(href, str):
        return None
    href = href.strip()
    if not href or href.startswith("#"):
        return None
    try:
        resolved = urljoin(base, href)
        parts = urlsplit(resolved)
    except ValueError:
        return None
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        return None
    return urlunsplit(parts._replace(fragment=""))


def strip_query(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit(parts._replace(query="", fragment=""))


def is_detail_url(url: str) -> bool:
    """True for job detail URLs; search pages and paginated listings are excluded."""

    parts = urlsplit(url)
    path = parts.path or ""
    if "search" in [seg.lower() for seg in path.split("/") if seg]:
        return False
    if _PAGE_QUERY_RE.search(parts.query or ""):
        return False
    return bool(_DETAIL_PATH_RE.search(path))


def build_listing_url(keyword: str = "", category: str = "", emirate: Optional[str] = None) -> str:
    path = "/jobs/"
    if category and category.strip():
        path += f"{slugify(category)}/"
    url = urljoin(site_base(emirate), path)
    if keyword and keyword.strip():
        url = set_query_param(url, "keywords", keyword.strip())
    return url


def set_query_param(url: str, name: str, value: str) -> str:
    parts = urlsplit(url)
    params = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != name]
    params.append((name, value))
    return urlunsplit(parts._replace(query=urlencode(params)))
