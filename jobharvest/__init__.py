"""Job listing harvester for a single classifieds site.

This package provides:
- A source cascade (intercepted API -> embedded state -> JSON-LD -> HTML)
- Normalization of heterogeneous payloads into canonical JobRecord values
- Pagination and budget control for a crawl run
- A fetch-strategy selector that detects blocked responses
"""

from jobharvest.models import JobRecord, LinkRecord, PagePayload, PageRequest, RawSource

__all__ = ["JobRecord", "LinkRecord", "PagePayload", "PageRequest", "RawSource"]
