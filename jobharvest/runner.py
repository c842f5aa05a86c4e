from __future__ import annotations

import logging
import os
import threading
import time
import uuid
from collections import deque
from concurrent.futures import Executor, ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass
from typing import Any, Callable, Deque, Dict, List, Optional

from jobharvest.cascade import listing_sources, resolve_detail, resolve_listing
from jobharvest.config import HarvestSettings
from jobharvest.env import float_env, int_env, parse_csv
from jobharvest.html_extract import parse_html
from jobharvest.http import FetchError, HostNotAllowedError, HttpFetcher, PageRenderer
from jobharvest.logging_utils import log_event
from jobharvest.models import JobRecord, LinkRecord, ListingResult, PagePayload, PageRequest
from jobharvest.pagination import PaginationController
from jobharvest.sinks import JobSink
from jobharvest.state import CrawlState
from jobharvest.strategy import FetchStrategySelector, classify_fetch
from jobharvest.urls import SITE_DOMAIN

LOGGER = logging.getLogger("jobharvest.runner")


@dataclass
class HarvestStats:
    listing_pages: int = 0
    links_found: int = 0
    details_fetched: int = 0
    saved: int = 0
    invalid: int = 0
    discarded: int = 0
    blocked: int = 0
    escalated: int = 0
    skipped: int = 0
    failed: int = 0
    duration_s: float = 0.0


@dataclass
class RunSummary:
    run_id: str
    stats: HarvestStats


def build_http_fetcher_from_env(
    *, transport: Optional[Any] = None, sleep: Callable[[float], None] = time.sleep
) -> HttpFetcher:
    allowlist = [host.lower() for host in parse_csv(os.getenv("HARVEST_HTTP_ALLOWLIST_HOSTS", SITE_DOMAIN))]
    return HttpFetcher(
        timeout_connect_s=float_env("HARVEST_HTTP_TIMEOUT_CONNECT_S", 10.0),
        timeout_read_s=float_env("HARVEST_HTTP_TIMEOUT_READ_S", 15.0),
        rate_limit_per_host_s=float_env("HARVEST_HTTP_RATE_LIMIT_PER_HOST_S", 0.5),
        max_retries=int_env("HARVEST_HTTP_MAX_RETRIES", 2),
        backoff_base_s=float_env("HARVEST_HTTP_BACKOFF_BASE_S", 0.5),
        backoff_max_s=float_env("HARVEST_HTTP_BACKOFF_MAX_S", 30.0),
        allowlist_hosts=allowlist,
        transport=transport,
        sleep=sleep,
    )


class Harvester:
    """Drives listing pages, detail pages and pagination for one run.

    Listing pages are handled one at a time; each page's detail batch is
    fetched on a thread pool and finished before pagination is decided, so
    the saved count seen by the controller is final.
    """

    def __init__(
        self,
        settings: HarvestSettings,
        *,
        http: HttpFetcher,
        sink: JobSink,
        renderer: Optional[PageRenderer] = None,
        selector: Optional[FetchStrategySelector] = None,
        run_id: Optional[str] = None,
    ) -> None:
        self.settings = settings
        self.run_id = run_id or str(uuid.uuid4())
        self.state = CrawlState(target_count=settings.target_count, max_pages=settings.page_limit)
        self.stats = HarvestStats()
        self._http = http
        self._sink = sink
        self._renderer = renderer
        self._selector = selector or FetchStrategySelector()
        self._stats_lock = threading.Lock()

    def _bump(self, name: str, n: int = 1) -> None:
        with self._stats_lock:
            setattr(self.stats, name, getattr(self.stats, name) + n)

    def _render(self, request: PageRequest) -> Optional[PagePayload]:
        assert self._renderer is not None
        try:
            payload = self._renderer.render(request)
        except Exception as e:
            self._bump("failed")
            log_event(
                LOGGER,
                logging.WARNING,
                "render_failed",
                run_id=self.run_id,
                url=request.url,
                error_type=type(e).__name__,
                error=str(e),
            )
            return None

        if payload.html and classify_fetch(200, payload.html).blocked:
            self._bump("failed")
            log_event(LOGGER, logging.WARNING, "render_blocked", run_id=self.run_id, url=request.url)
            return None
        return payload

    def fetch(self, request: PageRequest) -> Optional[PagePayload]:
        """Fetch one page, escalating to the renderer when the light fetch is blocked."""

        # Listing pages go through the renderer when there is one: that is
        # where intercepted API data comes from.
        use_renderer = self._renderer is not None and (
            request.label == "listing" or self._selector.strategy_for(request.url) == "rendered"
        )
        if use_renderer:
            return self._render(request)

        try:
            result = self._http.fetch(request.url)
        except HostNotAllowedError as e:
            self._bump("skipped")
            log_event(LOGGER, logging.INFO, "page_fetch_skipped", run_id=self.run_id, url=request.url, host=e.host)
            return None
        except FetchError as e:
            self._bump("failed")
            log_event(
                LOGGER,
                logging.WARNING,
                "page_fetch_failed",
                run_id=self.run_id,
                url=e.url,
                label=request.label,
                page=request.page_number,
                status_code=e.status_code,
                error=str(e),
            )
            return None

        decision = self._selector.classify(request.url, result.status_code, result.text, result.headers)
        if decision.ok:
            return result.to_payload()

        if decision.blocked:
            self._bump("blocked")
            if self._renderer is None:
                log_event(LOGGER, logging.WARNING, "fetch_blocked_no_renderer", run_id=self.run_id, url=request.url)
                return None
            self._bump("escalated")
            log_event(LOGGER, logging.INFO, "fetch_escalated", run_id=self.run_id, url=request.url)
            return self._render(request)

        self._bump("failed")
        log_event(
            LOGGER,
            logging.WARNING,
            "page_fetch_failed",
            run_id=self.run_id,
            url=request.url,
            label=request.label,
            page=request.page_number,
            status_code=result.status_code,
            reason=decision.reason,
        )
        return None

    def harvest_detail(self, request: PageRequest) -> Optional[JobRecord]:
        if self.state.target_reached:
            return None
        payload = self.fetch(request)
        if payload is None:
            return None
        self._bump("details_fetched")
        return resolve_detail(
            request.url,
            payload.html,
            json_body=payload.json_body,
            category=self.settings.category or None,
            default_location=self.settings.emirate if self.settings.location_fallback else None,
        )

    def _accept(self, record: Any, page_number: int) -> None:
        if isinstance(record, JobRecord) and not record.is_valid:
            self._bump("invalid")
            log_event(
                LOGGER, logging.WARNING, "record_invalid", run_id=self.run_id, url=record.url, page=page_number
            )
            return
        if not self.state.try_accept(record.url):
            self._bump("discarded")
            log_event(LOGGER, logging.DEBUG, "record_over_budget", run_id=self.run_id, url=record.url)
            return
        if self._sink.write(record) == "inserted":
            self._bump("saved")
            log_event(LOGGER, logging.INFO, "record_saved", run_id=self.run_id, url=record.url, page=page_number)
        else:
            self.state.release(record.url)
            self._bump("skipped")
            log_event(LOGGER, logging.DEBUG, "record_already_stored", run_id=self.run_id, url=record.url)

    def _process_details(self, pool: Executor, urls: List[str], page_number: int, seed: int) -> None:
        requests = [PageRequest(url=url, label="detail", page_number=page_number, seed=seed) for url in urls]
        futures = {pool.submit(self.harvest_detail, req): req.url for req in requests}
        for fut in as_completed(futures):
            url = futures[fut]
            try:
                record = fut.result()
            except Exception as e:
                self._bump("failed")
                log_event(
                    LOGGER,
                    logging.WARNING,
                    "detail_failed",
                    run_id=self.run_id,
                    url=url,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                continue
            if record is not None:
                self._accept(record, page_number)

    def process_listing(
        self, pool: Executor, request: PageRequest, controller: PaginationController
    ) -> Optional[PageRequest]:
        """Handle one listing page and return the next listing request, if any."""

        self.state.note_page(request.page_number)
        self._bump("listing_pages")
        log_event(LOGGER, logging.INFO, "listing_start", run_id=self.run_id, url=request.url, page=request.page_number)

        payload = self.fetch(request)
        document = parse_html(payload.html) if payload is not None and payload.html else None
        if payload is not None:
            result = resolve_listing(request.url, request.page_number, listing_sources(payload, document))
        else:
            result = ListingResult(records=[])

        # Urls stored by an earlier run are not fetched again and take no budget.
        known = self.state.claim_links([url for url in result.urls if self._sink.has(url)])
        if known:
            self._bump("skipped", len(known))
            log_event(
                LOGGER, logging.INFO, "links_already_stored", run_id=self.run_id, url=request.url, count=len(known)
            )
        batch = self.state.claim_links(result.urls, limit=self.state.remaining())
        self._bump("links_found", len(result.records))

        if self.settings.collect_details:
            self._process_details(pool, batch, request.page_number, request.seed)
        else:
            for url in batch:
                self._accept(LinkRecord(url=url), request.page_number)

        decision = controller.decide(
            saved_count=self.state.saved_count,
            target_count=self.state.target_count,
            current_page=request.page_number,
            current_url=request.url,
            document=document,
            # A page that failed to fetch says nothing about later pages.
            found_records=payload is None or not result.exhausted,
        )
        if decision.exhausted:
            return None
        log_event(
            LOGGER,
            logging.INFO,
            "next_page_scheduled",
            run_id=self.run_id,
            url=decision.next_url,
            page=request.page_number + 1,
            rule=decision.rule,
        )
        return PageRequest(
            url=decision.next_url, label="listing", page_number=request.page_number + 1, seed=request.seed
        )

    def run(self) -> RunSummary:
        start = time.perf_counter()
        initial = self.settings.initial_urls()
        log_event(
            LOGGER,
            logging.INFO,
            "harvest_start",
            run_id=self.run_id,
            start_urls=initial,
            target=self.state.target_count,
            max_pages=self.state.max_pages,
            collect_details=self.settings.collect_details,
        )

        queue: Deque[PageRequest] = deque(
            PageRequest(url=url, label="listing", page_number=1, seed=i) for i, url in enumerate(initial)
        )
        controllers: Dict[int, PaginationController] = {
            i: PaginationController(max_pages=self.state.max_pages) for i in range(len(initial))
        }

        try:
            with ThreadPoolExecutor(max_workers=self.settings.max_concurrency) as pool:
                while queue:
                    if self.state.target_reached:
                        break
                    request = queue.popleft()
                    if not self.state.page_allowed(request.page_number):
                        continue
                    next_request = self.process_listing(pool, request, controllers[request.seed])
                    if next_request is not None:
                        queue.append(next_request)
        finally:
            self._sink.close()

        self.stats.duration_s = time.perf_counter() - start
        log_event(
            LOGGER,
            logging.INFO,
            "harvest_done",
            run_id=self.run_id,
            **{k: (round(v, 3) if isinstance(v, float) else v) for k, v in asdict(self.stats).items()},
        )
        return RunSummary(run_id=self.run_id, stats=self.stats)


def run_harvest(
    settings: HarvestSettings,
    *,
    http: HttpFetcher,
    sink: JobSink,
    renderer: Optional[PageRenderer] = None,
    selector: Optional[FetchStrategySelector] = None,
    run_id: Optional[str] = None,
) -> RunSummary:
    return Harvester(settings, http=http, sink=sink, renderer=renderer, selector=selector, run_id=run_id).run()
