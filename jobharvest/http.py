from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from types import TracebackType
from typing import Callable, Dict, Iterable, Optional, Protocol, Sequence, Set
from urllib.parse import urlsplit

import httpx

from jobharvest.models import PagePayload, PageRequest
from jobharvest.normalize import load_json

USER_AGENTS: Sequence[str] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.0 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)


class HarvestHttpError(RuntimeError):
    pass


class HostNotAllowedError(HarvestHttpError):
    def __init__(self, host: str) -> None:
        super().__init__(f"Host not allowlisted: {host}")
        self.host = host


class FetchError(HarvestHttpError):
    def __init__(self, url: str, status_code: Optional[int], message: str) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


def _host_of(url: str) -> str:
    return (urlsplit(url).hostname or "").lower()


def host_allowed(host: str, allowlist: Iterable[str]) -> bool:
    """Exact host or any sub-domain of an allowlisted host."""

    return any(host == allowed or host.endswith(f".{allowed}") for allowed in allowlist)


class PerHostRateLimiter:
    def __init__(
        self,
        *,
        min_interval_s: float,
        now: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._min_interval_s = max(0.0, float(min_interval_s))
        self._now = now
        self._sleep = sleep
        self._next_allowed: Dict[str, float] = {}

    def wait(self, host: str) -> None:
        if self._min_interval_s <= 0:
            return
        ts = self._next_allowed.get(host, 0.0)
        now = self._now()
        if now < ts:
            self._sleep(ts - now)
        self._next_allowed[host] = max(now, ts) + self._min_interval_s


@dataclass(frozen=True)
class FetchResult:
    url: str
    status_code: int
    text: str
    content_type: Optional[str]
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def is_json(self) -> bool:
        return "json" in (self.content_type or "").lower()

    def to_payload(self) -> PagePayload:
        metadata = {"status_code": self.status_code, "content_type": self.content_type}
        if self.is_json:
            return PagePayload(url=self.url, json_body=load_json(self.text), strategy="http", metadata=metadata)
        return PagePayload(url=self.url, html=self.text, strategy="http", metadata=metadata)


class PageRenderer(Protocol):
    """Heavy fetch strategy (a real browser) supplied by the caller.

    Implementations return the rendered HTML and, for listing pages, any JSON
    captured from the page's own API calls as `json_body`.
    """

    def render(self, request: PageRequest) -> PagePayload: ...


class HttpFetcher:
    """Lightweight fetch strategy: plain HTTP with rate limiting and retries.

    Non-2xx responses are returned, not raised, so that callers can classify
    challenge pages. Transport failures raise FetchError once retries run out.
    """

    def __init__(
        self,
        *,
        user_agents: Optional[Sequence[str]] = None,
        timeout_connect_s: float = 10.0,
        timeout_read_s: float = 15.0,
        rate_limit_per_host_s: float = 0.5,
        max_retries: int = 2,
        backoff_base_s: float = 0.5,
        backoff_max_s: float = 30.0,
        allowlist_hosts: Optional[Iterable[str]] = None,
        transport: Optional[httpx.BaseTransport] = None,
        now: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._user_agents = list(user_agents or USER_AGENTS)
        self._max_retries = max(0, int(max_retries))
        self._backoff_base_s = float(backoff_base_s)
        self._backoff_max_s = float(backoff_max_s)
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._allowlist_hosts: Set[str] = {h.strip().lower() for h in (allowlist_hosts or []) if h and h.strip()}

        self._rate_limiter = PerHostRateLimiter(
            min_interval_s=float(rate_limit_per_host_s),
            now=now,
            sleep=sleep,
        )

        self._client = httpx.Client(
            timeout=httpx.Timeout(
                connect=timeout_connect_s,
                read=timeout_read_s,
                write=timeout_read_s,
                pool=timeout_connect_s,
            ),
            follow_redirects=True,
            transport=transport,
            headers={
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.9",
                "DNT": "1",
                "Upgrade-Insecure-Requests": "1",
            },
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "HttpFetcher":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()

    def _enforce_allowlist(self, url: str) -> None:
        host = _host_of(url)
        if not host:
            raise FetchError(url, None, f"Invalid URL (no host): {url}")
        if self._allowlist_hosts and not host_allowed(host, self._allowlist_hosts):
            raise HostNotAllowedError(host)

    def _backoff(self, attempt: int) -> float:
        base = self._backoff_base_s * (2 ** max(0, attempt - 1))
        jitter = self._rng.random() * 0.25
        return min(self._backoff_max_s, base + jitter)

    def _is_retryable_status(self, status_code: int) -> bool:
        return status_code == 429 or 500 <= status_code <= 599

    def _parse_retry_after_s(self, value: Optional[str]) -> Optional[float]:
        if not value or not value.strip():
            return None
        try:
            return max(0.0, float(value.strip()))
        except ValueError:
            return None

    def fetch(self, url: str) -> FetchResult:
        self._enforce_allowlist(url)
        host = _host_of(url)

        for attempt in range(1, self._max_retries + 2):
            final = attempt >= self._max_retries + 1
            try:
                self._rate_limiter.wait(host)
                resp = self._client.get(url, headers={"User-Agent": self._rng.choice(self._user_agents)})
            except (httpx.TimeoutException, httpx.TransportError) as e:
                if final:
                    raise FetchError(url, None, f"HTTP transport error for {url}: {e}") from e
                self._sleep(self._backoff(attempt))
                continue

            if self._is_retryable_status(resp.status_code) and not final:
                retry_after = self._parse_retry_after_s(resp.headers.get("Retry-After"))
                self._sleep(retry_after if retry_after is not None else self._backoff(attempt))
                continue

            return FetchResult(
                url=str(resp.url),
                status_code=int(resp.status_code),
                text=resp.text,
                content_type=resp.headers.get("Content-Type"),
                headers=dict(resp.headers),
            )

        raise FetchError(url, None, f"HTTP failed for {url}")
