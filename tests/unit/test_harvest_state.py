from __future__ import annotations

import threading

from jobharvest.state import CrawlState


def test_try_accept_counts_each_url_once_within_budget():
    state = CrawlState(target_count=2, max_pages=3)

    assert state.try_accept("https://dubai.dubizzle.com/jobs/a/1")
    assert not state.try_accept("https://dubai.dubizzle.com/jobs/a/1")
    assert state.try_accept("https://dubai.dubizzle.com/jobs/a/2")
    assert not state.try_accept("https://dubai.dubizzle.com/jobs/a/3")

    assert state.saved_count == 2
    assert state.remaining() == 0
    assert state.target_reached


def test_unbounded_target_never_reaches():
    state = CrawlState(target_count=None, max_pages=3)
    for n in range(50):
        assert state.try_accept(f"https://dubai.dubizzle.com/jobs/a/{n}")
    assert state.remaining() is None
    assert not state.target_reached


def test_claim_links_dedupes_across_pages_and_respects_limit():
    state = CrawlState(target_count=10, max_pages=3)

    first = state.claim_links(["u1", "u2", "u2", "u3"], limit=2)
    second = state.claim_links(["u2", "u3", "u4"])

    assert first == ["u1", "u2"]
    # u3 was beyond the first limit, so it is still available.
    assert second == ["u3", "u4"]


def test_page_allowed_respects_max_pages_and_target():
    state = CrawlState(target_count=1, max_pages=2)
    assert state.page_allowed(2)
    assert not state.page_allowed(3)
    state.try_accept("u1")
    assert not state.page_allowed(1)


def test_note_page_keeps_highest_page():
    state = CrawlState(target_count=None, max_pages=5)
    state.note_page(3)
    state.note_page(2)
    assert state.current_page == 3


def test_concurrent_accepts_never_overshoot_target():
    state = CrawlState(target_count=25, max_pages=1)
    accepted = []
    lock = threading.Lock()

    def worker(offset: int) -> None:
        for n in range(50):
            if state.try_accept(f"u{offset}-{n}"):
                with lock:
                    accepted.append(n)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert state.saved_count == 25
    assert len(accepted) == 25


def test_release_returns_budget_for_unwritten_records():
    state = CrawlState(target_count=1, max_pages=1)

    assert state.try_accept("u1")
    state.release("u1")
    state.release("never-accepted")

    assert state.saved_count == 0
    assert state.try_accept("u2")
    assert state.target_reached
