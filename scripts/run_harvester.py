#!/usr/bin/env python3
from __future__ import annotations

# ruff: noqa: E402
import argparse
import os
import sys
from typing import Any, Dict

# Ensure project root is in path for local execution.
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

from jobharvest.config import HarvestSettings
from jobharvest.logging_utils import configure_logging
from jobharvest.runner import build_http_fetcher_from_env, run_harvest
from jobharvest.sinks import JobSink, JsonlSink, StdoutSink
from jobharvest.strategy import FetchStrategySelector


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    values: Dict[str, Any] = {
        "keyword": args.keyword,
        "category": args.category,
        "emirate": args.emirate,
        "results_wanted": args.results_wanted,
        "max_pages": args.max_pages,
        "max_concurrency": args.max_concurrency,
        "output_path": args.output,
    }
    if args.no_details:
        values["collect_details"] = False
    if args.start_url:
        values["start_urls"] = ",".join(args.start_url)
    return {k: v for k, v in values.items() if v is not None}


def main() -> int:
    parser = argparse.ArgumentParser(description="Harvest job listings (listing pages + detail pages).")
    parser.add_argument("--keyword", help="Search keywords (HARVEST_KEYWORD).")
    parser.add_argument("--category", help="Category slug or name, e.g. 'driving' (HARVEST_CATEGORY).")
    parser.add_argument("--emirate", help="Site region sub-domain, default dubai (HARVEST_EMIRATE).")
    parser.add_argument("--results-wanted", type=float, help="Records to save; 'inf' for no limit.")
    parser.add_argument("--max-pages", type=float, help="Listing pages to visit per start URL.")
    parser.add_argument("--max-concurrency", type=int, help="Parallel detail fetches.")
    parser.add_argument("--start-url", action="append", help="Explicit listing URL (repeatable).")
    parser.add_argument("--no-details", action="store_true", help="Save listing URLs only, skip detail pages.")
    parser.add_argument("--dry-run", action="store_true", help="Print records to stdout (no writes).")
    parser.add_argument("--output", help="Output JSONL path (default: HARVEST_OUTPUT_PATH).")
    parser.add_argument(
        "--sticky-escalation",
        action="store_true",
        help="Once a host serves a challenge page, stop trying plain HTTP against it.",
    )
    args = parser.parse_args()

    configure_logging(os.getenv("LOG_LEVEL", "INFO"))

    settings = HarvestSettings(**_overrides(args))

    sink: JobSink
    if args.dry_run:
        sink = StdoutSink()
    else:
        sink = JsonlSink(settings.output_path)

    with build_http_fetcher_from_env() as http:
        summary = run_harvest(
            settings,
            http=http,
            sink=sink,
            selector=FetchStrategySelector(sticky=args.sticky_escalation),
        )

    stats = summary.stats
    print(
        f"Run summary run_id={summary.run_id} saved={stats.saved} invalid={stats.invalid} "
        f"blocked={stats.blocked} failed={stats.failed} pages={stats.listing_pages}"
    )
    return 0 if stats.saved > 0 or stats.failed == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
