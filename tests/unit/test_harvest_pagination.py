from __future__ import annotations

from pathlib import Path

from jobharvest.html_extract import parse_html
from jobharvest.pagination import PaginationController, find_next_page_url
from jobharvest.state import CrawlState

URL = "https://dubai.dubizzle.com/jobs/driving/"


def _fixture(path: str) -> str:
    base = Path(__file__).resolve().parents[1] / "fixtures" / "harvester"
    return (base / path).read_text(encoding="utf-8")


def test_find_next_page_prefers_rel_next():
    doc = parse_html(_fixture("listing_links.html"))
    assert find_next_page_url(doc, URL, 1) == ("https://dubai.dubizzle.com/jobs/driving/?page=2", "rel_next")


def test_find_next_page_uses_next_text_anchor():
    doc = parse_html('<a href="/jobs/driving/?page=1">1</a><a href="/jobs/driving/?page=3">Next page</a>')
    assert find_next_page_url(doc, URL, 2) == ("https://dubai.dubizzle.com/jobs/driving/?page=3", "next_text")


def test_find_next_page_recognizes_arrow_glyphs():
    doc = parse_html('<a href="?page=4">»</a>')
    url, rule = find_next_page_url(doc, "https://dubai.dubizzle.com/jobs/?page=3", 3)
    assert url == "https://dubai.dubizzle.com/jobs/?page=4"
    assert rule == "next_text"


def test_find_next_page_falls_back_to_page_param():
    url, rule = find_next_page_url(None, "https://dubai.dubizzle.com/jobs/?keywords=driver&page=2", 2)
    assert url == "https://dubai.dubizzle.com/jobs/?keywords=driver&page=3"
    assert rule == "page_param"


def test_controller_follows_next_link_while_budget_remains():
    controller = PaginationController(max_pages=5)
    doc = parse_html(_fixture("listing_links.html"))

    decision = controller.decide(
        saved_count=3, target_count=10, current_page=1, current_url=URL, document=doc, found_records=True
    )

    assert decision.next_url == "https://dubai.dubizzle.com/jobs/driving/?page=2"
    assert decision.rule == "rel_next"
    assert not controller.exhausted


def test_controller_stops_when_target_reached_and_stays_exhausted():
    controller = PaginationController(max_pages=5)

    first = controller.decide(saved_count=10, target_count=10, current_page=1, current_url=URL)
    second = controller.decide(saved_count=0, target_count=10, current_page=1, current_url=URL)

    assert first.exhausted
    assert first.reason == "target_reached"
    assert second.exhausted
    assert second.reason == "exhausted"
    assert controller.exhausted


def test_controller_stops_when_saved_count_passes_target():
    controller = PaginationController(max_pages=5)
    decision = controller.decide(saved_count=12, target_count=10, current_page=1, current_url=URL)
    assert decision.reason == "target_reached"
    assert decision.next_url is None


def test_controller_stops_at_max_pages():
    controller = PaginationController(max_pages=2)
    assert not controller.decide(saved_count=0, target_count=None, current_page=1, current_url=URL).exhausted
    decision = controller.decide(saved_count=0, target_count=None, current_page=2, current_url=URL + "?page=2")
    assert decision.reason == "max_pages"


def test_controller_stops_on_self_loop():
    controller = PaginationController(max_pages=10)
    doc = parse_html('<a rel="next" href="/jobs/driving/?page=2">next</a>')
    decision = controller.decide(
        saved_count=0,
        target_count=None,
        current_page=2,
        current_url="https://dubai.dubizzle.com/jobs/driving/?page=2",
        document=doc,
    )
    assert decision.reason == "self_loop"


def test_controller_assumes_early_empty_pages_continue():
    controller = PaginationController(max_pages=10, assume_pages_until=3)

    early = controller.decide(saved_count=0, target_count=None, current_page=1, current_url=URL, found_records=False)
    assert early.rule == "page_param"
    assert early.next_url == URL + "?page=2"

    late = controller.decide(
        saved_count=0, target_count=None, current_page=3, current_url=URL + "?page=3", found_records=False
    )
    assert late.reason == "no_records"


def test_controller_follows_explicit_next_link_even_without_records():
    controller = PaginationController(max_pages=10)
    doc = parse_html('<a rel="next" href="/jobs/driving/?page=6">next</a>')
    decision = controller.decide(
        saved_count=0,
        target_count=None,
        current_page=5,
        current_url=URL + "?page=5",
        document=doc,
        found_records=False,
    )
    assert decision.rule == "rel_next"


def test_fifteen_links_per_page_with_target_ten_stops_after_first_page():
    state = CrawlState(target_count=10, max_pages=5)
    controller = PaginationController(max_pages=5)
    links = [f"https://dubai.dubizzle.com/jobs/driving/{n}" for n in range(15)]

    batch = state.claim_links(links, limit=state.remaining())
    for url in batch:
        state.try_accept(url)

    decision = controller.decide(
        saved_count=state.saved_count,
        target_count=state.target_count,
        current_page=1,
        current_url=URL,
        found_records=True,
    )

    assert len(batch) == 10
    assert state.saved_count == 10
    assert decision.reason == "target_reached"
