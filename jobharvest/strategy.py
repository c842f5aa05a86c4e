from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Literal, Mapping, Optional, Set, Tuple
from urllib.parse import urlsplit

from jobharvest.logging_utils import log_event
from jobharvest.models import FetchStrategy

LOGGER = logging.getLogger("jobharvest.strategy")

Verdict = Literal["ok", "blocked", "failed"]

# Body markers of anti-bot interstitials, matched case-insensitively.
BLOCK_BODY_MARKERS: Tuple[Tuple[str, str], ...] = (
    ("_incapsula_resource", "incapsula"),
    ("incapsula incident", "incapsula"),
    ("request unsuccessful. incapsula", "incapsula"),
    ("cf-browser-verification", "cloudflare"),
    ("cf_chl_opt", "cloudflare"),
    ("cf-chl-", "cloudflare"),
    ("<title>just a moment", "cloudflare"),
    ("px-captcha", "perimeterx"),
    ("please verify you are a human", "captcha"),
)

# Header name -> challenge-specific value substring. Headers a CDN adds to
# every proxied response (X-Iinfo, CF-Ray) are not markers.
BLOCK_HEADER_MARKERS: Tuple[Tuple[str, str, str], ...] = (
    ("cf-mitigated", "challenge", "cloudflare"),
)


@dataclass(frozen=True)
class FetchDecision:
    verdict: Verdict
    body: Optional[str] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.verdict == "ok"

    @property
    def blocked(self) -> bool:
        return self.verdict == "blocked"


def _block_marker(body: str, headers: Mapping[str, str]) -> Optional[str]:
    lowered = {k.lower(): str(v).lower() for k, v in headers.items()}
    for name, needle, vendor in BLOCK_HEADER_MARKERS:
        value = lowered.get(name)
        if value is not None and needle in value:
            return vendor
    text = body.lower()
    for needle, vendor in BLOCK_BODY_MARKERS:
        if needle in text:
            return vendor
    return None


def classify_fetch(
    status_code: Optional[int],
    body: Optional[str],
    headers: Optional[Mapping[str, str]] = None,
) -> FetchDecision:
    """Classify one fetch attempt as ok, blocked (escalate strategy) or failed (retry policy)."""

    body = body or ""
    vendor = _block_marker(body, headers or {})
    if vendor is not None:
        return FetchDecision(verdict="blocked", reason=vendor)
    if status_code is None:
        return FetchDecision(verdict="failed", reason="no_response")
    if status_code >= 400:
        return FetchDecision(verdict="failed", reason=f"http_{status_code}")
    if not body.strip():
        return FetchDecision(verdict="failed", reason="empty_body")
    return FetchDecision(verdict="ok", body=body)


def _host_of(url: str) -> str:
    return (urlsplit(url).hostname or "").lower()


class FetchStrategySelector:
    """Tracks classifications and tells callers which strategy to use next.

    With `sticky=True` a host that served one challenge page is fetched with
    the rendered strategy from then on.
    """

    def __init__(self, *, sticky: bool = False) -> None:
        self._sticky = bool(sticky)
        self._lock = threading.Lock()
        self._blocked_hosts: Set[str] = set()
        self.counts: Dict[Verdict, int] = {"ok": 0, "blocked": 0, "failed": 0}

    def classify(
        self,
        url: str,
        status_code: Optional[int],
        body: Optional[str],
        headers: Optional[Mapping[str, str]] = None,
    ) -> FetchDecision:
        decision = classify_fetch(status_code, body, headers)
        with self._lock:
            self.counts[decision.verdict] += 1
            if decision.blocked:
                self._blocked_hosts.add(_host_of(url))
        if decision.blocked:
            log_event(LOGGER, logging.INFO, "fetch_blocked", url=url, vendor=decision.reason, status_code=status_code)
        return decision

    def strategy_for(self, url: str) -> FetchStrategy:
        if not self._sticky:
            return "http"
        with self._lock:
            return "rendered" if _host_of(url) in self._blocked_hosts else "http"
