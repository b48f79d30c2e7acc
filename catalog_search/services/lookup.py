"""Substring lookup over the most recent slice of the catalog."""

import structlog

from ..models import CatalogEntry
from .catalog_store import CatalogStore

log = structlog.stdlib.get_logger()

DEFAULT_SCAN_WINDOW = 500


def lookup_cached(
    store: CatalogStore,
    query: str,
    limit: int,
    window: int = DEFAULT_SCAN_WINDOW,
) -> list[CatalogEntry]:
    """Find cached games whose title contains an already-normalized query.

    Only the `window` most recently written entries are scanned, whatever
    the limit. This keeps the cost of a lookup fixed as the catalog grows,
    at the price of recall: an old entry that nobody has refreshed in a
    while will not be found, however good a title match it is, until an
    enrichment re-upserts it and moves it back into the window.

    Args:
        store: Catalog to read from
        query: Lowercased, trimmed search text
        limit: Maximum number of entries to return
        window: Number of most recent entries to scan

    Returns:
        Matching entries, most recently updated first
    """
    candidates = store.get_recent(window)
    matches = [entry for entry in candidates if query in entry.title.lower()]
    # Stable, so entries written in the same instant keep store order
    matches.sort(key=lambda entry: entry.last_updated, reverse=True)

    log.debug(
        "Cached lookup",
        query=query,
        scanned=len(candidates),
        matched=len(matches),
        limit=limit,
    )
    return matches[:limit]
