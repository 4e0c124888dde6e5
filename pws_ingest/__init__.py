"""Weather station ingestion engine.

Subpackages:
- ingestion: Provider client, field mapping, normalization, deduplication and storage.
- services: Event surface, ingestion coordinator, poll scheduler and engine.
- api: HTTP surface for health, status and manual date fetches.
- tests: Unit tests for the pws_ingest package.
"""

__all__ = [
    "ingestion",
    "services",
    "api",
]
