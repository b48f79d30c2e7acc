"""Catalog-related data models."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class CatalogEntry:
    """A cached game as stored in the catalog."""
    id: int
    title: str
    last_updated: datetime
    category: int | None = None  # IGDB game_type code, None if unknown
    aggregated_rating: float | None = None  # 0-100 scale
    aggregated_rating_count: int | None = None
    hype_count: int | None = None
    first_release_date: int | None = None  # Epoch seconds
    franchise_names: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RankedEntry:
    """A catalog entry scored and positioned within one franchise group."""
    entry: CatalogEntry
    score: float
    rank_within_group: int


# Franchise label -> entries ordered by descending score
FranchiseGroups = dict[str, list[RankedEntry]]
