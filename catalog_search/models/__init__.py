"""Data models for the game catalog search service."""

from .catalog import CatalogEntry, FranchiseGroups, RankedEntry
from .config import SearchConfig
from .search import EnrichmentState, ReconcileOutcome, SearchResponse, SearchResults

__all__ = [
    "CatalogEntry",
    "EnrichmentState",
    "FranchiseGroups",
    "RankedEntry",
    "ReconcileOutcome",
    "SearchConfig",
    "SearchResponse",
    "SearchResults",
]
