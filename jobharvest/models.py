from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional

SourceKind = Literal["intercepted_api", "embedded_json", "json_ld", "html"]
PageLabel = Literal["listing", "detail"]
FetchStrategy = Literal["http", "rendered"]

# Fixed cascade order for listing pages.
SOURCE_PRIORITY: tuple[SourceKind, ...] = ("intercepted_api", "embedded_json", "json_ld", "html")

RECORD_FIELDS: tuple[str, ...] = (
    "title",
    "company",
    "category",
    "location",
    "salary",
    "job_type",
    "date_posted",
    "description_html",
)


@dataclass(frozen=True)
class JobRecord:
    """Canonical job record; `url` is the natural key."""

    url: str
    title: Optional[str] = None
    company: Optional[str] = None
    category: Optional[str] = None
    location: Optional[str] = None
    salary: Optional[str] = None
    job_type: Optional[str] = None
    date_posted: Optional[str] = None
    description_html: Optional[str] = None
    description_text: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return bool(self.title and self.title.strip())

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LinkRecord:
    """Output record used when detail pages are not collected."""

    url: str

    def as_dict(self) -> Dict[str, Any]:
        return {"url": self.url}


@dataclass(frozen=True)
class ListingRecord:
    """Partial record discovered on a listing page."""

    url: str
    title: Optional[str] = None


@dataclass(frozen=True)
class RawSource:
    """One candidate data source for a page, tagged by kind."""

    kind: SourceKind
    payload: Any


@dataclass(frozen=True)
class PageRequest:
    url: str
    label: PageLabel
    page_number: int = 1
    seed: int = 0


@dataclass(frozen=True)
class PagePayload:
    """What the fetch layer hands over for one request."""

    url: str
    html: Optional[str] = None
    json_body: Any = None
    strategy: FetchStrategy = "http"
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ListingResult:
    records: List[ListingRecord]
    source: Optional[SourceKind] = None

    @property
    def exhausted(self) -> bool:
        return not self.records

    @property
    def urls(self) -> List[str]:
        return [r.url for r in self.records]


def empty_fields() -> Dict[str, Optional[str]]:
    return {name: None for name in RECORD_FIELDS}
