from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Literal, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from jobharvest.models import RECORD_FIELDS
from jobharvest.normalize import normalize_whitespace
from jobharvest.urls import is_detail_url, strip_query, to_absolute


@dataclass(frozen=True)
class FieldRule:
    """One selector attempt for a detail field.

    `attr` reads an attribute instead of text, `html` keeps inner HTML, and
    `pick` chooses the first or last matching element.
    """

    selector: str
    attr: Optional[str] = None
    html: bool = False
    pick: Literal["first", "last"] = "first"


# Ordered per field; the first rule producing a non-empty value wins.
FIELD_RULES: Dict[str, Tuple[FieldRule, ...]] = {
    "title": (
        FieldRule("h1"),
        FieldRule('[class*="title"]'),
    ),
    "company": (
        FieldRule('[class*="contact"]'),
        FieldRule('[class*="company"]'),
        FieldRule('[class*="agent"]'),
        FieldRule('[itemprop="hiringOrganization"]'),
    ),
    "category": (),
    "location": (
        FieldRule('[class*="location"]'),
        FieldRule('[class*="breadcrumb"] a', pick="last"),
        FieldRule('[itemprop="jobLocation"]'),
    ),
    "salary": (
        FieldRule('[class*="salary"]'),
        FieldRule('[class*="price"]'),
        FieldRule('[itemprop="baseSalary"]'),
    ),
    "job_type": (
        FieldRule('[class*="employment"]'),
        FieldRule('[class*="job-type"]'),
        FieldRule('[itemprop="employmentType"]'),
    ),
    "date_posted": (
        FieldRule('[class*="date"]'),
        FieldRule("time", attr="datetime"),
        FieldRule('[itemprop="datePosted"]', attr="content"),
    ),
    "description_html": (
        FieldRule('[class*="description"]', html=True),
        FieldRule("article", html=True),
        FieldRule('[class*="content"]', html=True),
    ),
}

TITLE_SEPARATOR = "|"

_LINK_ANCHOR_SELECTOR = 'a[href*="/jobs/"]'
_DATA_ATTR_SELECTOR = '[data-testid*="listing"], [data-testid*="job"], [data-href]'
_CARD_SELECTOR = 'article, [class*="listing"], [class*="card"], [class*="item"]'


def parse_html(html: Optional[str]) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def _rule_value(element: Tag, rule: FieldRule) -> Optional[str]:
    if rule.attr:
        raw = element.get(rule.attr)
        if isinstance(raw, list):
            raw = " ".join(raw)
        value = normalize_whitespace(raw) if isinstance(raw, str) else ""
    elif rule.html:
        inner = element.decode_contents()
        value = inner if inner.strip() else ""
    else:
        value = normalize_whitespace(element.get_text(" ", strip=True))
    return value or None


def apply_rule(document: BeautifulSoup, rule: FieldRule) -> Optional[str]:
    matches = document.select(rule.selector)
    if not matches:
        return None
    element = matches[0] if rule.pick == "first" else matches[-1]
    return _rule_value(element, rule)


def _title_from_document_title(document: BeautifulSoup) -> Optional[str]:
    title = document.find("title")
    if title is None:
        return None
    head = title.get_text(" ", strip=True).split(TITLE_SEPARATOR)[0]
    return normalize_whitespace(head) or None


def extract_field(document: BeautifulSoup, name: str) -> Optional[str]:
    for rule in FIELD_RULES.get(name, ()):
        value = apply_rule(document, rule)
        if value:
            return value
    if name == "title":
        return _title_from_document_title(document)
    return None


def extract_fields(document: BeautifulSoup, names: Optional[Iterable[str]] = None) -> Dict[str, Optional[str]]:
    return {name: extract_field(document, name) for name in (names or RECORD_FIELDS)}


def _accept(href: Optional[str], base_url: str) -> Optional[str]:
    url = to_absolute(href, base_url)
    if url is None or not is_detail_url(url):
        return None
    return strip_query(url)


def _href(element: Tag, attr: str = "href") -> Optional[str]:
    value = element.get(attr)
    return value if isinstance(value, str) else None


def discover_job_links(document: BeautifulSoup, base_url: str) -> List[str]:
    """Detail links found on a listing page, deduplicated and in discovery order."""

    found: Dict[str, None] = {}

    for anchor in document.select(_LINK_ANCHOR_SELECTOR):
        url = _accept(_href(anchor), base_url)
        if url:
            found.setdefault(url, None)

    for element in document.select(_DATA_ATTR_SELECTOR):
        href = _href(element, "data-href")
        if not href:
            anchor = element.find("a", href=True)
            href = _href(anchor) if anchor is not None else None
        url = _accept(href, base_url)
        if url:
            found.setdefault(url, None)

    for card in document.select(_CARD_SELECTOR):
        anchor = card.select_one(_LINK_ANCHOR_SELECTOR)
        if anchor is None:
            continue
        url = _accept(_href(anchor), base_url)
        if url:
            found.setdefault(url, None)

    return list(found)
