"""Ingestion subpackage.

Provides the provider client, the canonical field map, normalization,
the deduplication index and the observation store.
"""

from .client import ObservationFetcher, WundergroundClient
from .dedup import DeduplicationIndex
from .fields import CanonicalField, CanonicalObservation, map_field
from .normalize import Normalizer
from .storage import ObservationStore

__all__ = [
    "CanonicalField",
    "CanonicalObservation",
    "DeduplicationIndex",
    "Normalizer",
    "ObservationFetcher",
    "ObservationStore",
    "WundergroundClient",
    "map_field",
]
