"""Search session data models."""

from dataclasses import dataclass
from enum import Enum

from .catalog import CatalogEntry, FranchiseGroups


class EnrichmentState(Enum):
    """Enrichment state of a search session."""
    IDLE = "idle"
    PENDING = "pending"
    IN_FLIGHT = "in_flight"


class ReconcileOutcome(Enum):
    """What happened to a provider response when it arrived."""
    APPLIED = "applied"
    STALE_DISCARDED = "stale_discarded"


@dataclass(frozen=True)
class SearchResults:
    """The result set currently displayed for a session."""
    query: str
    limit: int
    entries: list[CatalogEntry]
    groups: FranchiseGroups


@dataclass(frozen=True)
class SearchResponse:
    """What a caller receives from a search."""
    query: str
    groups: FranchiseGroups
    enriching: bool
