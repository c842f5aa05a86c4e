from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Literal, Optional, Tuple

from bs4 import BeautifulSoup

from jobharvest.logging_utils import log_event
from jobharvest.urls import set_query_param, to_absolute

LOGGER = logging.getLogger("jobharvest.pagination")

PAGE_PARAM = "page"
NEXT_TEXT_RE = re.compile(r"\bnext\b|[›»→>]", re.IGNORECASE)

# Without an explicit next link, a page that produced nothing only leads to
# another page while current_page is below this number.
ASSUME_PAGES_UNTIL = 3

NextRule = Literal["rel_next", "next_text", "page_param"]
StopReason = Literal["target_reached", "max_pages", "self_loop", "no_records", "exhausted"]


@dataclass(frozen=True)
class PageDecision:
    next_url: Optional[str]
    rule: Optional[NextRule] = None
    reason: Optional[StopReason] = None

    @property
    def exhausted(self) -> bool:
        return self.next_url is None


def find_next_page_url(
    document: Optional[BeautifulSoup],
    current_url: str,
    current_page: int,
    *,
    page_param: str = PAGE_PARAM,
) -> Tuple[str, NextRule]:
    """Next listing URL and the rule that produced it."""

    if document is not None:
        for element in document.select('a[rel~="next"], link[rel~="next"]'):
            url = to_absolute(element.get("href") if isinstance(element.get("href"), str) else None, current_url)
            if url:
                return url, "rel_next"

        for anchor in document.find_all("a", href=True):
            if NEXT_TEXT_RE.search(anchor.get_text(" ", strip=True)):
                url = to_absolute(anchor["href"], current_url)
                if url:
                    return url, "next_text"

    return set_query_param(current_url, page_param, str(current_page + 1)), "page_param"


class PaginationController:
    """Active -> exhausted state machine for one chain of listing pages."""

    def __init__(
        self,
        *,
        max_pages: int,
        page_param: str = PAGE_PARAM,
        assume_pages_until: int = ASSUME_PAGES_UNTIL,
    ) -> None:
        self._max_pages = max(1, int(max_pages))
        self._page_param = page_param
        self._assume_pages_until = int(assume_pages_until)
        self._exhausted = False

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def _stop(self, reason: StopReason, **fields: object) -> PageDecision:
        self._exhausted = True
        log_event(LOGGER, logging.INFO, "pagination_exhausted", reason=reason, **fields)
        return PageDecision(next_url=None, reason=reason)

    def decide(
        self,
        *,
        saved_count: int,
        target_count: Optional[int],
        current_page: int,
        current_url: str,
        document: Optional[BeautifulSoup] = None,
        found_records: bool = True,
    ) -> PageDecision:
        if self._exhausted:
            return PageDecision(next_url=None, reason="exhausted")

        if target_count is not None and saved_count >= target_count:
            return self._stop("target_reached", saved=saved_count, target=target_count)
        if current_page >= self._max_pages:
            return self._stop("max_pages", page=current_page, max_pages=self._max_pages)

        next_url, rule = find_next_page_url(document, current_url, current_page, page_param=self._page_param)

        if rule == "page_param" and not found_records and current_page >= self._assume_pages_until:
            return self._stop("no_records", page=current_page, url=current_url)
        if next_url == current_url:
            return self._stop("self_loop", url=current_url)

        return PageDecision(next_url=next_url, rule=rule)
