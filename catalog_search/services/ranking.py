"""Franchise-aware relevance ranking.

Search hits are grouped by franchise and ordered inside each group by a
global relevance score, so that main releases with broad critical
consensus come before remakes, ports and add-ons:

    score = category (0-100) + popularity (0-200) + quality (0-150)
            + recency (0-50) + hype (0-50), capped at 1000

Recency is only floored. A release date in the future gives a negative
age, so such a game scores more than 50 recency points.
"""

import re
import time
from dataclasses import dataclass

from ..models import CatalogEntry, FranchiseGroups, RankedEntry

MAX_SCORE = 1000.0
SECONDS_PER_YEAR = 365 * 24 * 60 * 60

# IGDB game_type code -> priority; closer to a franchise's main line scores higher
CATEGORY_PRIORITY: dict[int, int] = {
    0: 100,  # main_game
    3: 90,   # bundle
    10: 85,  # expanded_game
    2: 80,   # expansion
    4: 75,   # standalone_expansion
    6: 70,   # episode
    7: 65,   # season
    11: 60,  # port
    8: 50,   # remake
    9: 50,   # remaster
    1: 40,   # dlc_addon
    5: 30,   # mod
    12: 20,  # fork
    13: 20,  # pack
    14: 10,  # update
}
MAIN_GAME = 0


def category_score(entry: CatalogEntry) -> float:
    # A game without a category is treated as a main release
    category = MAIN_GAME if entry.category is None else entry.category
    return float(CATEGORY_PRIORITY.get(category, 0))


def popularity_score(entry: CatalogEntry) -> float:
    rating_count = entry.aggregated_rating_count or 0
    return min(rating_count / 100, 100) * 2


def quality_score(entry: CatalogEntry) -> float:
    # Ratings arrive on a 0-100 scale and are not clamped again here
    return ((entry.aggregated_rating or 0) / 100) * 150


def recency_score(entry: CatalogEntry, now: float) -> float:
    if not entry.first_release_date:
        return 0.0
    years_since_release = (now - entry.first_release_date) / SECONDS_PER_YEAR
    return max(50 - years_since_release, 0.0)


def hype_score(entry: CatalogEntry) -> float:
    return min((entry.hype_count or 0) / 10000, 50)


def score(entry: CatalogEntry, now: float | None = None) -> float:
    """Compute the relevance score of a catalog entry.

    Args:
        entry: Entry to score
        now: Reference time in epoch seconds (defaults to the current time)

    Returns:
        Score between 0 and 1000, higher is more relevant
    """
    if now is None:
        now = time.time()

    total = (
        category_score(entry)
        + popularity_score(entry)
        + quality_score(entry)
        + recency_score(entry, now)
        + hype_score(entry)
    )
    return min(total, MAX_SCORE)


@dataclass(frozen=True)
class FranchiseRule:
    """One title shape that reveals a franchise name.

    The pattern's first group captures the franchise part of the title.
    """
    name: str
    pattern: re.Pattern[str]

    def apply(self, title: str) -> str | None:
        """Return the franchise label if the title has this shape."""
        match = self.pattern.search(title)
        if not match:
            return None
        label = match.group(1).strip()
        return label or None


FRANCHISE_RULES: tuple[FranchiseRule, ...] = (
    # "Resident Evil 4 Remake" -> "Resident Evil 4"
    FranchiseRule(
        name="qualifier",
        pattern=re.compile(
            r"(.+?)\s*(?:Remake|Remaster|HD|Anniversary|Edition|Version|Expansion|DLC|Mobile|Spin-off)",
            re.IGNORECASE,
        ),
    ),
    # "The Legend of Zelda: A Link to the Past" -> "The Legend of Zelda"
    FranchiseRule(
        name="subtitle",
        pattern=re.compile(r"(.+?)\s*[:–]\s*(?:The|A|An)", re.IGNORECASE),
    ),
    # "Final Fantasy VII" -> "Final Fantasy"
    FranchiseRule(
        name="roman_numeral",
        pattern=re.compile(r"^(.+?)\s+(?:I{1,3}|IV|V|VI|VII|VIII|IX|X)(?:\s|$|:)", re.IGNORECASE),
    ),
)


def extract_franchise_from_title(title: str) -> str:
    """Guess a franchise label from a game title.

    Rules are tried in order and the first match wins. A title no rule
    recognizes is its own franchise.
    """
    for rule in FRANCHISE_RULES:
        label = rule.apply(title)
        if label is not None:
            return label
    return title


def franchises_for(entry: CatalogEntry) -> list[str]:
    """Franchise labels an entry is grouped under."""
    if entry.franchise_names:
        return list(dict.fromkeys(entry.franchise_names))
    return [extract_franchise_from_title(entry.title)]


def group_and_rank(entries: list[CatalogEntry], now: float | None = None) -> FranchiseGroups:
    """Group entries by franchise and rank each group by score.

    An entry with several franchise labels appears in each of their groups.
    Within a group, entries with equal scores keep their input order.

    Args:
        entries: Entries to rank
        now: Reference time in epoch seconds shared by every score

    Returns:
        Mapping of franchise label to ranked entries, best first
    """
    if now is None:
        now = time.time()

    scored: dict[str, list[tuple[CatalogEntry, float]]] = {}
    for entry in entries:
        entry_score = score(entry, now)
        for label in franchises_for(entry):
            scored.setdefault(label, []).append((entry, entry_score))

    groups: FranchiseGroups = {}
    for label, members in scored.items():
        members.sort(key=lambda member: member[1], reverse=True)
        groups[label] = [
            RankedEntry(entry=entry, score=entry_score, rank_within_group=position)
            for position, (entry, entry_score) in enumerate(members, start=1)
        ]
    return groups
