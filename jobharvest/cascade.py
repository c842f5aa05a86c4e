"""
Source cascade for listing and detail pages.

Listing pages: sources are tried in SOURCE_PRIORITY order and the first one
that yields records wins; lower-priority sources are never consulted.

Detail pages: JSON-LD, then any JobPosting in a JSON body, then HTML field
rules are merged field by field, first non-null value winning.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from bs4 import BeautifulSoup

from jobharvest import html_extract, normalize
from jobharvest.logging_utils import log_event
from jobharvest.models import (
    RECORD_FIELDS,
    SOURCE_PRIORITY,
    JobRecord,
    ListingRecord,
    ListingResult,
    PagePayload,
    RawSource,
    SourceKind,
    empty_fields,
)

LOGGER = logging.getLogger("jobharvest.cascade")

ListingExtractor = Callable[[Any, str], List[ListingRecord]]


def _from_json(payload: Any, base_url: str) -> List[ListingRecord]:
    return normalize.listing_records_from_json(payload, base_url)


def _from_jsonld(payload: Any, base_url: str) -> List[ListingRecord]:
    return normalize.listing_records_from_jsonld(payload, base_url)


def _from_html(document: Any, base_url: str) -> List[ListingRecord]:
    if not isinstance(document, BeautifulSoup):
        document = html_extract.parse_html(document if isinstance(document, str) else None)
    return [ListingRecord(url=url) for url in html_extract.discover_job_links(document, base_url)]


LISTING_EXTRACTORS: Dict[SourceKind, ListingExtractor] = {
    "intercepted_api": _from_json,
    "embedded_json": _from_json,
    "json_ld": _from_jsonld,
    "html": _from_html,
}


def listing_sources(payload: PagePayload, document: Optional[BeautifulSoup] = None) -> List[RawSource]:
    """Candidate sources available for one fetched listing page."""

    sources: List[RawSource] = []
    if payload.json_body is not None:
        sources.append(RawSource(kind="intercepted_api", payload=payload.json_body))
    if document is None and payload.html:
        document = html_extract.parse_html(payload.html)
    if document is not None:
        embedded = normalize.parse_embedded_state(document)
        if embedded is not None:
            sources.append(RawSource(kind="embedded_json", payload=embedded))
        jsonld = normalize.extract_jsonld_payloads(document)
        if jsonld:
            sources.append(RawSource(kind="json_ld", payload=jsonld))
        sources.append(RawSource(kind="html", payload=document))
    return sources


def resolve_listing(request_url: str, page_number: int, sources: List[RawSource]) -> ListingResult:
    by_kind: Dict[SourceKind, RawSource] = {}
    for source in sources:
        by_kind.setdefault(source.kind, source)

    for kind in SOURCE_PRIORITY:
        source = by_kind.get(kind)
        if source is None or source.payload is None:
            continue
        records = LISTING_EXTRACTORS[kind](source.payload, request_url)
        if records:
            log_event(
                LOGGER,
                logging.INFO,
                "listing_source_selected",
                url=request_url,
                page=page_number,
                source=kind,
                records=len(records),
            )
            return ListingResult(records=records, source=kind)

    log_event(LOGGER, logging.WARNING, "listing_no_records", url=request_url, page=page_number)
    return ListingResult(records=[])


def _merge(target: Dict[str, Optional[str]], fields: Dict[str, Optional[str]]) -> None:
    for name in RECORD_FIELDS:
        if target.get(name) is None and fields.get(name) is not None:
            target[name] = fields[name]


def resolve_detail(
    url: str,
    html: Optional[str],
    *,
    json_ld: Optional[Dict[str, Any]] = None,
    json_body: Any = None,
    category: Optional[str] = None,
    default_location: Optional[str] = None,
    document: Optional[BeautifulSoup] = None,
) -> JobRecord:
    """Build one JobRecord for a detail page. The caller checks `is_valid`."""

    if document is None:
        document = html_extract.parse_html(html)
    if json_ld is None:
        json_ld = normalize.find_jobposting(normalize.extract_jsonld_payloads(document))

    merged = empty_fields()
    _merge(merged, normalize.jobposting_fields(json_ld))
    if json_body is not None:
        _merge(merged, normalize.jobposting_fields(normalize.find_jobposting(normalize.load_json(json_body))))

    missing = [name for name in RECORD_FIELDS if merged[name] is None]
    if missing:
        _merge(merged, html_extract.extract_fields(document, missing))

    fallbacks: Dict[str, Optional[str]] = {
        "category": normalize.clean_text(category),
        "location": normalize.clean_text(default_location),
    }
    _merge(merged, fallbacks)

    return JobRecord(
        url=url,
        description_text=normalize.html_to_text(merged["description_html"]),
        **merged,
    )
