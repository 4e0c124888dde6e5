"""Exception hierarchy for the ingestion engine.

Only `ConfigurationError` and `StorageOpenError` stop the engine. Every other
error is absorbed into a status event by the coordinator.
"""

from __future__ import annotations


class PwsIngestError(Exception):
    """Base exception for all ingestion failures."""


class ConfigurationError(PwsIngestError):
    """Raised for missing, invalid or already-set setup values."""


class FetchError(PwsIngestError):
    """Raised when a day of observations could not be retrieved."""


class NetworkError(FetchError):
    """Raised for connection failures, timeouts and HTTP error statuses."""


class ParseError(FetchError):
    """Raised when the provider response is not the expected JSON document."""


class NormalizationError(PwsIngestError):
    """Raised when a provider observation cannot become a canonical record."""


class MissingKeyError(NormalizationError):
    """Raised when an observation lacks station id or local timestamp."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Observation is missing required keys: {', '.join(self.missing)}")


class StorageError(PwsIngestError):
    """Raised for failed reads or writes against the observation store."""


class StorageOpenError(StorageError):
    """Raised when the observation store cannot be opened or initialized."""


class DuplicateObservationError(StorageError):
    """Raised when a natural key is already present in the store."""
