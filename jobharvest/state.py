from __future__ import annotations

import threading
from typing import Iterable, List, Optional, Set


class CrawlState:
    """Run-wide budget shared by every pagination step and detail completion.

    All reads and writes go through one lock; `try_accept` is the only way to
    count a saved record.
    """

    def __init__(self, *, target_count: Optional[int], max_pages: int) -> None:
        self.target_count = target_count
        self.max_pages = max(1, int(max_pages))
        self._lock = threading.Lock()
        self._saved = 0
        self._current_page = 1
        self._accepted: Set[str] = set()
        self._seen_links: Set[str] = set()

    @property
    def saved_count(self) -> int:
        with self._lock:
            return self._saved

    @property
    def current_page(self) -> int:
        with self._lock:
            return self._current_page

    def remaining(self) -> Optional[int]:
        with self._lock:
            return self._remaining_locked()

    def _remaining_locked(self) -> Optional[int]:
        if self.target_count is None:
            return None
        return max(0, self.target_count - self._saved)

    @property
    def target_reached(self) -> bool:
        return self.remaining() == 0

    def page_allowed(self, page_number: int) -> bool:
        return not self.target_reached and page_number <= self.max_pages

    def note_page(self, page_number: int) -> None:
        with self._lock:
            self._current_page = max(self._current_page, int(page_number))

    def claim_links(self, urls: Iterable[str], *, limit: Optional[int] = None) -> List[str]:
        """Return up to `limit` urls not seen before on any page, in order, and mark them seen.

        Urls beyond the limit stay unclaimed so a later page may still schedule them.
        """

        fresh: List[str] = []
        with self._lock:
            for url in urls:
                if limit is not None and len(fresh) >= limit:
                    break
                if url in self._seen_links:
                    continue
                self._seen_links.add(url)
                fresh.append(url)
        return fresh

    def try_accept(self, url: str) -> bool:
        """Count a record for `url` if budget remains and it was not counted before."""

        with self._lock:
            if url in self._accepted:
                return False
            remaining = self._remaining_locked()
            if remaining is not None and remaining <= 0:
                return False
            self._accepted.add(url)
            self._saved += 1
            return True

    def release(self, url: str) -> None:
        """Give back the budget taken by `try_accept` when the record was not written."""

        with self._lock:
            if url in self._accepted:
                self._accepted.discard(url)
                self._saved -= 1
