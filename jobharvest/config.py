"""
Harvest settings using Pydantic for type-safe configuration.

Values come from keyword arguments (the CLI) or `HARVEST_*` environment
variables, with a `.env` file loaded when present.
"""

from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from jobharvest.env import finite_count, parse_csv
from jobharvest.urls import DEFAULT_EMIRATE, build_listing_url

# Load .env file if it exists
load_dotenv()

DEFAULT_RESULTS_WANTED = 100
DEFAULT_MAX_PAGES = 20


class HarvestSettings(BaseSettings):
    """Crawl input: what to search for and when to stop."""

    model_config = SettingsConfigDict(env_prefix="HARVEST_", extra="ignore")

    keyword: str = Field(default="")
    category: str = Field(default="")
    emirate: str = Field(default=DEFAULT_EMIRATE)
    # Floats so that "inf" can express an unbounded run.
    results_wanted: float = Field(default=DEFAULT_RESULTS_WANTED)
    max_pages: float = Field(default=DEFAULT_MAX_PAGES)
    collect_details: bool = Field(default=True)
    # Comma-separated list of explicit listing URLs.
    start_urls: str = Field(default="")
    max_concurrency: int = Field(default=5, ge=1)
    # Fill a missing detail location with the configured emirate.
    location_fallback: bool = Field(default=True)
    output_path: str = Field(default="./data/jobharvest/jobs.jsonl")

    @property
    def target_count(self) -> Optional[int]:
        """None means unbounded."""
        return finite_count(self.results_wanted, default=None)

    @property
    def page_limit(self) -> int:
        return finite_count(self.max_pages, default=DEFAULT_MAX_PAGES) or DEFAULT_MAX_PAGES

    @property
    def start_url_list(self) -> List[str]:
        return parse_csv(self.start_urls)

    def initial_urls(self) -> List[str]:
        """Explicit start URLs, or one listing URL built from keyword/category/emirate."""
        urls = self.start_url_list
        if urls:
            return urls
        return [build_listing_url(self.keyword, self.category, self.emirate)]

