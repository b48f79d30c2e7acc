"""Applies provider responses to the displayed results of a session."""

from collections.abc import Callable

import structlog

from ..models import CatalogEntry, ReconcileOutcome, SearchResults
from .catalog_store import CatalogStore
from .lookup import DEFAULT_SCAN_WINDOW, lookup_cached
from .ranking import group_and_rank

log = structlog.stdlib.get_logger()

UpdateListener = Callable[[SearchResults], object]


class ResultReconciler:
    """Keeps the displayed results in step with the active query.

    A provider response is only applied if it was requested for the query
    that is active when it arrives. Anything else is a stale response from
    an earlier keystroke and is dropped, so a slow response can never
    overwrite newer results.
    """

    def __init__(
        self,
        store: CatalogStore,
        window: int = DEFAULT_SCAN_WINDOW,
        on_update: UpdateListener | None = None,
        session_id: str = "default",
    ) -> None:
        self._store = store
        self._window = window
        self._on_update = on_update
        self._session_id = session_id
        self._displayed: SearchResults | None = None

    @property
    def active_query(self) -> str | None:
        return self._displayed.query if self._displayed else None

    @property
    def displayed(self) -> SearchResults | None:
        return self._displayed

    def activate(self, results: SearchResults) -> None:
        """Make results the displayed set and their query the active one."""
        self._displayed = results

    def reconcile(self, query: str, fetched: list[CatalogEntry]) -> ReconcileOutcome:
        """Apply a provider response for query.

        The catalog is read again, since the provider has upserted what it
        found. Fetched entries matching the query that the lookup did not
        return are appended before ranking.

        Args:
            query: Query the provider call was made for
            fetched: Entries the provider returned

        Returns:
            Whether the response was applied or discarded as stale
        """
        current = self._displayed
        if current is None or current.query != query:
            log.debug(
                "Stale enrichment response discarded",
                session_id=self._session_id,
                query=query,
                active_query=self.active_query,
            )
            return ReconcileOutcome.STALE_DISCARDED

        entries = lookup_cached(self._store, query, current.limit, self._window)
        seen = {entry.id for entry in entries}
        for entry in fetched:
            if len(entries) >= current.limit:
                break
            if entry.id not in seen and query in entry.title.lower():
                entries.append(entry)
                seen.add(entry.id)

        results = SearchResults(
            query=query,
            limit=current.limit,
            entries=entries,
            groups=group_and_rank(entries),
        )
        self._displayed = results

        log.info(
            "Enrichment applied",
            session_id=self._session_id,
            query=query,
            previous_count=len(current.entries),
            result_count=len(entries),
        )
        if self._on_update is not None:
            self._on_update(results)
        return ReconcileOutcome.APPLIED
