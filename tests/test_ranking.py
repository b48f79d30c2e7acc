"""Tests for relevance scoring, franchise extraction and grouping."""

from datetime import datetime, timezone

import pytest
from hypothesis import given, strategies as st

from catalog_search.models import CatalogEntry
from catalog_search.services.ranking import (
    CATEGORY_PRIORITY,
    FRANCHISE_RULES,
    SECONDS_PER_YEAR,
    extract_franchise_from_title,
    franchises_for,
    group_and_rank,
    recency_score,
    score,
)

NOW = 1_700_000_000.0
UPDATED = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_entry(
    entry_id: int = 1,
    title: str = "Some Game",
    category: int | None = 0,
    rating: float | None = None,
    rating_count: int | None = None,
    hype: int | None = None,
    years_since_release: float | None = None,
    franchises: list[str] | None = None,
) -> CatalogEntry:
    release = None
    if years_since_release is not None:
        release = int(NOW - years_since_release * SECONDS_PER_YEAR)
    return CatalogEntry(
        id=entry_id,
        title=title,
        last_updated=UPDATED,
        category=category,
        aggregated_rating=rating,
        aggregated_rating_count=rating_count,
        hype_count=hype,
        first_release_date=release,
        franchise_names=franchises or [],
    )


entries_strategy = st.builds(
    make_entry,
    entry_id=st.integers(min_value=1, max_value=10_000),
    title=st.sampled_from(["Halo 3", "Final Fantasy VII", "Hades", "Celeste", "Metroid Prime"]),
    category=st.one_of(st.none(), st.integers(min_value=0, max_value=20)),
    rating=st.one_of(st.none(), st.floats(min_value=0, max_value=100)),
    rating_count=st.one_of(st.none(), st.integers(min_value=0, max_value=10_000_000)),
    hype=st.one_of(st.none(), st.integers(min_value=0, max_value=10**9)),
    years_since_release=st.one_of(st.none(), st.floats(min_value=-100, max_value=100)),
    franchises=st.one_of(
        st.none(),
        st.lists(st.sampled_from(["Halo", "Final Fantasy", "Zelda"]), max_size=3),
    ),
)


def test_scoring_scenario_orders_main_games_before_remake() -> None:
    """Four Zelda games with known inputs score and rank as expected."""
    entries = [
        make_entry(1, "A", 0, 90, 250, 0, 5, ["The Legend of Zelda"]),
        make_entry(2, "B", 0, 85, 180, 0, 1, ["The Legend of Zelda"]),
        make_entry(3, "C", 0, 70, 80, 500, 8, ["The Legend of Zelda"]),
        make_entry(4, "D", 8, 88, 120, 0, 3, ["The Legend of Zelda"]),
    ]

    assert score(entries[0], NOW) == pytest.approx(285.0)
    assert score(entries[1], NOW) == pytest.approx(280.1)
    assert score(entries[2], NOW) == pytest.approx(248.65)
    assert score(entries[3], NOW) == pytest.approx(231.4)

    # Input order scrambled on purpose
    groups = group_and_rank([entries[3], entries[2], entries[0], entries[1]], now=NOW)

    assert list(groups) == ["The Legend of Zelda"]
    ranked = groups["The Legend of Zelda"]
    assert [item.entry.title for item in ranked] == ["A", "B", "C", "D"]
    assert [item.rank_within_group for item in ranked] == [1, 2, 3, 4]


@given(entries_strategy)
def test_score_is_bounded_and_deterministic(entry: CatalogEntry) -> None:
    first = score(entry, NOW)
    assert 0 <= first <= 1000
    assert score(entry, NOW) == first


@given(
    st.integers(min_value=0, max_value=10_000),
    st.integers(min_value=0, max_value=10_000),
    st.floats(min_value=0, max_value=100),
)
def test_score_is_monotonic_in_rating_count(count_a: int, count_b: int, rating: float) -> None:
    low, high = sorted((count_a, count_b))
    assert score(make_entry(rating=rating, rating_count=low), NOW) <= score(
        make_entry(rating=rating, rating_count=high), NOW
    )


def test_popularity_saturates_at_ten_thousand_ratings() -> None:
    assert score(make_entry(rating_count=10_000), NOW) == score(make_entry(rating_count=250_000), NOW)


def test_missing_category_counts_as_main_game() -> None:
    assert score(make_entry(category=None), NOW) == CATEGORY_PRIORITY[0]


def test_unknown_category_scores_zero() -> None:
    assert score(make_entry(category=99), NOW) == 0


def test_hype_contribution_is_capped() -> None:
    assert score(make_entry(hype=10**9), NOW) == pytest.approx(100 + 50)


def test_future_release_date_inflates_recency() -> None:
    """Recency is only floored, so a future release scores above 50."""
    entry = make_entry(years_since_release=-10)
    assert recency_score(entry, NOW) == pytest.approx(60)


def test_old_release_scores_no_recency() -> None:
    assert recency_score(make_entry(years_since_release=80), NOW) == 0


def test_total_score_is_capped_at_one_thousand() -> None:
    entry = make_entry(rating=100, rating_count=10_000, hype=10**9, years_since_release=-10_000)
    assert score(entry, NOW) == 1000


@pytest.mark.parametrize(
    ("title", "franchise"),
    [
        ("Resident Evil 4 Remake", "Resident Evil 4"),
        ("Halo 2 Anniversary", "Halo 2"),
        ("The Legend of Zelda: A Link to the Past", "The Legend of Zelda"),
        ("Castlevania – The Adventure", "Castlevania"),
        ("Final Fantasy VII", "Final Fantasy"),
        ("Grand Theft Auto V", "Grand Theft Auto"),
        ("Final Fantasy X: International", "Final Fantasy"),
        ("Hades", "Hades"),
        ("Celeste", "Celeste"),
    ],
)
def test_extract_franchise_from_title(title: str, franchise: str) -> None:
    assert extract_franchise_from_title(title) == franchise


def test_qualifier_rule_wins_over_roman_numeral() -> None:
    assert extract_franchise_from_title("Final Fantasy VII Remake") == "Final Fantasy VII"


def test_franchise_rules_apply_independently() -> None:
    qualifier, subtitle, roman = FRANCHISE_RULES
    assert qualifier.apply("Halo: Combat Evolved Anniversary") == "Halo: Combat Evolved"
    assert subtitle.apply("Halo: Combat Evolved") is None
    assert subtitle.apply("Zelda: The Minish Cap") == "Zelda"
    assert roman.apply("Street Fighter II Turbo") == "Street Fighter"
    assert roman.apply("Portal") is None


@given(st.text(max_size=80))
def test_franchise_extraction_is_stable(title: str) -> None:
    assert extract_franchise_from_title(title) == extract_franchise_from_title(title)


def test_explicit_franchises_are_deduplicated() -> None:
    entry = make_entry(title="Hyrule Warriors", franchises=["Zelda", "Warriors", "Zelda"])
    assert franchises_for(entry) == ["Zelda", "Warriors"]


def test_title_is_used_without_explicit_franchise() -> None:
    assert franchises_for(make_entry(title="Metroid Prime 2: Echoes")) == ["Metroid Prime 2: Echoes"]


def test_entry_with_several_franchises_joins_each_group() -> None:
    crossover = make_entry(1, "Hyrule Warriors", franchises=["Zelda", "Warriors"])
    zelda = make_entry(2, "Breath of the Wild", rating=97, rating_count=120, franchises=["Zelda"])

    groups = group_and_rank([crossover, zelda], now=NOW)

    assert set(groups) == {"Zelda", "Warriors"}
    assert [item.entry.id for item in groups["Zelda"]] == [2, 1]
    assert [item.entry.id for item in groups["Warriors"]] == [1]
    assert groups["Warriors"][0].rank_within_group == 1


def test_equal_scores_keep_input_order() -> None:
    entries = [make_entry(entry_id, f"Game {entry_id}", franchises=["Same"]) for entry_id in (3, 1, 2)]
    ranked = group_and_rank(entries, now=NOW)["Same"]
    assert [item.entry.id for item in ranked] == [3, 1, 2]


@given(st.lists(entries_strategy, max_size=15))
def test_groups_have_contiguous_ranks_and_descending_scores(entries: list[CatalogEntry]) -> None:
    groups = group_and_rank(entries, now=NOW)

    for ranked in groups.values():
        assert [item.rank_within_group for item in ranked] == list(range(1, len(ranked) + 1))
        scores = [item.score for item in ranked]
        assert scores == sorted(scores, reverse=True)


@given(st.lists(entries_strategy, max_size=15))
def test_entries_sharing_a_label_share_a_group(entries: list[CatalogEntry]) -> None:
    groups = group_and_rank(entries, now=NOW)

    for position, entry in enumerate(entries):
        for label in franchises_for(entry):
            members = [item.entry for item in groups[label]]
            assert sum(1 for member in members if member is entry) == 1, position
