from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from jobharvest.logging_utils import log_event
from jobharvest.models import ListingRecord, empty_fields
from jobharvest.urls import is_detail_url, strip_query, to_absolute

LOGGER = logging.getLogger("jobharvest.normalize")

# Where listing arrays live in the payloads seen so far. Append new shapes here.
LISTING_CONTAINER_PATHS: Tuple[Tuple[str, ...], ...] = (
    ("listings",),
    ("results",),
    ("data", "listings"),
    ("data", "results"),
    ("props", "pageProps", "listings"),
    ("pageProps", "listings"),
    ("hits",),
)

_ITEM_URL_KEYS = ("absolute_url", "url", "link", "href")
_ITEM_ID_KEYS = ("id", "externalID", "listing_id")
_ITEM_SLUG_KEYS = ("categorySlug", "category_slug", "category")
_ITEM_TITLE_KEYS = ("title", "name")

_STATE_ASSIGN_RE = re.compile(r"window\.__(?:INITIAL|APP)_STATE__\s*=\s*", re.IGNORECASE)
_NON_TEXT_TAGS = ["script", "style", "noscript", "iframe", "embed", "object"]


def normalize_whitespace(text: Optional[str]) -> str:
    return re.sub(r"\s+", " ", (text or "").strip())


def clean_text(value: Any) -> Optional[str]:
    """Whitespace-collapsed string, or None for missing/blank/non-scalar values."""

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    cleaned = normalize_whitespace(value)
    return cleaned or None


def html_to_text(html: Optional[str]) -> Optional[str]:
    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_NON_TEXT_TAGS):
        tag.decompose()
    text = normalize_whitespace(soup.get_text(" ", strip=True))
    return text or None


def load_json(value: Any) -> Any:
    """Parse a JSON string/bytes payload. Malformed input yields None."""

    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    if not isinstance(value, str):
        return value
    value = value.strip()
    if not value:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return None


def _walk(payload: Any, path: Sequence[str]) -> Any:
    node = payload
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def find_listing_array(payload: Any) -> List[Any]:
    """Return the first non-empty listing array found under a known container path."""

    payload = load_json(payload)
    for path in LISTING_CONTAINER_PATHS:
        node = _walk(payload, path)
        if isinstance(node, list) and node:
            return node
    return []


def _first_str(item: Dict[str, Any], keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        value = item.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _item_url_explicit(item: Dict[str, Any], base_url: str) -> Optional[str]:
    for key in _ITEM_URL_KEYS:
        value = item.get(key)
        url = to_absolute(value if isinstance(value, str) else None, base_url)
        if url and is_detail_url(url):
            return url
    return None


def _item_url_constructed(item: Dict[str, Any], base_url: str) -> Optional[str]:
    job_id = _first_str(item, _ITEM_ID_KEYS)
    if not job_id:
        return None
    slug = _first_str(item, _ITEM_SLUG_KEYS) or "jobs"
    return to_absolute(f"/jobs/{slug}/{job_id}", base_url)


ItemUrlRule = Callable[[Dict[str, Any], str], Optional[str]]
LISTING_ITEM_URL_RULES: Tuple[ItemUrlRule, ...] = (_item_url_explicit, _item_url_constructed)


def listing_records_from_json(payload: Any, base_url: str) -> List[ListingRecord]:
    """Map an API/app-state payload to listing records; unknown shapes give []."""

    records: List[ListingRecord] = []
    for item in find_listing_array(payload):
        if not isinstance(item, dict):
            continue
        url = None
        for rule in LISTING_ITEM_URL_RULES:
            url = rule(item, base_url)
            if url:
                break
        if not url:
            continue
        records.append(ListingRecord(url=strip_query(url), title=clean_text(_first_str(item, _ITEM_TITLE_KEYS))))
    return records


def _iter_jsonld_dicts(obj: Any) -> Iterable[Dict[str, Any]]:
    if isinstance(obj, dict):
        yield obj
        for v in obj.values():
            yield from _iter_jsonld_dicts(v)
    elif isinstance(obj, list):
        for item in obj:
            yield from _iter_jsonld_dicts(item)


def _has_type(d: Dict[str, Any], wanted: str) -> bool:
    t = d.get("@type", d.get("type"))
    if isinstance(t, str):
        types = [t]
    elif isinstance(t, list):
        types = [x for x in t if isinstance(x, str)]
    else:
        types = []
    return any(x.lower() == wanted.lower() for x in types)


def extract_jsonld_payloads(document: BeautifulSoup) -> List[Any]:
    payloads: List[Any] = []
    for script in document.select('script[type="application/ld+json"]'):
        parsed = load_json(script.string or script.get_text())
        if parsed is None:
            log_event(LOGGER, logging.DEBUG, "jsonld_unparseable")
            continue
        payloads.append(parsed)
    return payloads


def find_jobposting(payload: Any) -> Optional[Dict[str, Any]]:
    for d in _iter_jsonld_dicts(payload):
        if _has_type(d, "JobPosting"):
            return d
    return None


def listing_records_from_jsonld(payloads: Any, base_url: str) -> List[ListingRecord]:
    """JobPosting urls and ItemList entries found in JSON-LD markup."""

    records: List[ListingRecord] = []
    for d in _iter_jsonld_dicts(payloads):
        if _has_type(d, "JobPosting"):
            url = to_absolute(d.get("url") if isinstance(d.get("url"), str) else None, base_url)
            if url and is_detail_url(url):
                records.append(ListingRecord(url=strip_query(url), title=clean_text(d.get("title") or d.get("name"))))
        elif _has_type(d, "ItemList"):
            elements = d.get("itemListElement")
            for element in elements if isinstance(elements, list) else []:
                href = element
                if isinstance(element, dict):
                    inner = element.get("item")
                    href = element.get("url") or (inner.get("url") if isinstance(inner, dict) else inner)
                url = to_absolute(href if isinstance(href, str) else None, base_url)
                if url and is_detail_url(url):
                    records.append(ListingRecord(url=strip_query(url)))

    seen: Dict[str, ListingRecord] = {}
    for record in records:
        seen.setdefault(record.url, record)
    return list(seen.values())


def parse_embedded_state(document: BeautifulSoup) -> Optional[Any]:
    """Framework state serialized into the page (Next.js data or window state)."""

    next_data = document.select_one("script#__NEXT_DATA__")
    if next_data is not None:
        parsed = load_json(next_data.string or next_data.get_text())
        page_props = _walk(parsed, ("props", "pageProps"))
        if page_props:
            return page_props

    decoder = json.JSONDecoder()
    for script in document.find_all("script", src=False):
        content = script.string or script.get_text() or ""
        match = _STATE_ASSIGN_RE.search(content)
        if not match:
            continue
        try:
            state, _end = decoder.raw_decode(content, match.end())
        except json.JSONDecodeError:
            continue
        if isinstance(state, dict):
            return state
    return None


def _location_of(jobposting: Dict[str, Any]) -> Optional[str]:
    loc = jobposting.get("jobLocation")
    if isinstance(loc, list):
        loc = next((x for x in loc if isinstance(x, dict)), None)
    if not isinstance(loc, dict):
        return None
    addr = loc.get("address")
    if not isinstance(addr, dict):
        return None
    return clean_text(addr.get("addressLocality")) or clean_text(addr.get("addressRegion"))


def _salary_of(jobposting: Dict[str, Any]) -> Optional[str]:
    salary = jobposting.get("baseSalary")
    if not isinstance(salary, dict):
        return clean_text(salary)
    value = salary.get("value")
    if isinstance(value, dict):
        return clean_text(value.get("value")) or clean_text(value.get("minValue"))
    return clean_text(value) or clean_text(salary.get("minValue"))


def _employment_type_of(jobposting: Dict[str, Any]) -> Optional[str]:
    et = jobposting.get("employmentType")
    if isinstance(et, list):
        return clean_text(", ".join(x for x in et if isinstance(x, str)))
    return clean_text(et)


def _company_of(jobposting: Dict[str, Any]) -> Optional[str]:
    org = jobposting.get("hiringOrganization")
    if isinstance(org, dict):
        return clean_text(org.get("name"))
    return clean_text(org)


def jobposting_fields(jobposting: Optional[Dict[str, Any]]) -> Dict[str, Optional[str]]:
    """Map a JobPosting object to canonical fields. Missing fields stay None."""

    fields = empty_fields()
    if not isinstance(jobposting, dict):
        return fields

    fields["title"] = clean_text(jobposting.get("title")) or clean_text(jobposting.get("name"))
    fields["company"] = _company_of(jobposting)
    fields["category"] = clean_text(jobposting.get("occupationalCategory")) or clean_text(jobposting.get("industry"))
    fields["location"] = _location_of(jobposting)
    fields["salary"] = _salary_of(jobposting)
    fields["job_type"] = _employment_type_of(jobposting)
    fields["date_posted"] = clean_text(jobposting.get("datePosted"))

    desc = jobposting.get("description")
    # Kept verbatim; sanitizing happens only in the text projection.
    fields["description_html"] = desc if isinstance(desc, str) and desc.strip() else None
    return fields
