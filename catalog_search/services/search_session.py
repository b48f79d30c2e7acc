"""Search entry point: cache-first lookup with enrichment on demand."""

import structlog

from ..models import SearchConfig, SearchResponse, SearchResults
from .catalog_store import CatalogStore
from .enrichment import EnrichmentProvider, EnrichmentScheduler
from .lookup import lookup_cached
from .query import normalize_limit, normalize_query
from .ranking import group_and_rank
from .reconciler import ResultReconciler, UpdateListener

log = structlog.stdlib.get_logger()


class SearchSession:
    """One search box: answers queries from cache and enriches in the background.

    Sessions share the catalog store and nothing else.
    """

    def __init__(
        self,
        store: CatalogStore,
        provider: EnrichmentProvider,
        config: SearchConfig,
        session_id: str = "default",
        on_update: UpdateListener | None = None,
    ) -> None:
        """Initialize a search session.

        Args:
            store: Shared catalog store
            provider: External provider used when the cache has too few hits
            config: Search settings
            session_id: Identifier used in log events
            on_update: Called with the new results whenever enrichment replaces them
        """
        self.session_id = session_id
        self._store = store
        self._config = config
        self.reconciler = ResultReconciler(
            store,
            window=config.scan_window,
            on_update=on_update,
            session_id=session_id,
        )
        self.scheduler = EnrichmentScheduler(
            provider,
            on_complete=self.reconciler.reconcile,
            debounce_delay=config.debounce_delay,
            min_cached_results=config.min_cached_results,
            provider_limit=config.provider_limit,
            session_id=session_id,
        )

    def search(self, raw_query: str | None, raw_limit: object = None) -> SearchResponse:
        """Search the cached catalog and schedule enrichment if it falls short.

        Never suspends; must be called from a running event loop so the
        enrichment timer can be scheduled.

        Raises:
            InvalidQuery: If the query is empty once trimmed
            InvalidLimit: If the limit is not a positive integer
        """
        query = normalize_query(raw_query)
        limit = normalize_limit(raw_limit, self._config.default_limit, self._config.max_limit)

        entries = lookup_cached(self._store, query, limit, self._config.scan_window)
        results = SearchResults(
            query=query,
            limit=limit,
            entries=entries,
            groups=group_and_rank(entries),
        )
        self.reconciler.activate(results)
        self.scheduler.notify(query, len(entries))

        enriching = self.scheduler.is_enriching(query)
        log.info(
            "Search served from cache",
            session_id=self.session_id,
            query=query,
            limit=limit,
            result_count=len(entries),
            group_count=len(results.groups),
            enriching=enriching,
        )
        return SearchResponse(query=query, groups=results.groups, enriching=enriching)

    def current(self) -> SearchResponse | None:
        """The displayed results, with an up-to-date enriching flag."""
        displayed = self.reconciler.displayed
        if displayed is None:
            return None
        return SearchResponse(
            query=displayed.query,
            groups=displayed.groups,
            enriching=self.scheduler.is_enriching(displayed.query),
        )

    async def wait_idle(self) -> None:
        """Wait for pending and in-flight enrichment to settle."""
        await self.scheduler.wait_idle()

    async def close(self) -> None:
        await self.scheduler.close()


class SearchService:
    """Hands out independent search sessions over one catalog and provider."""

    def __init__(
        self,
        store: CatalogStore,
        provider: EnrichmentProvider,
        config: SearchConfig,
    ) -> None:
        self._store = store
        self._provider = provider
        self._config = config
        self._sessions: dict[str, SearchSession] = {}
        log.info(
            "Search service initialized",
            scan_window=config.scan_window,
            min_cached_results=config.min_cached_results,
            debounce_delay=config.debounce_delay,
        )

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def open_session(
        self,
        session_id: str,
        on_update: UpdateListener | None = None,
    ) -> SearchSession:
        """Return the session with this id, creating it if needed."""
        session = self._sessions.get(session_id)
        if session is None:
            session = SearchSession(
                self._store,
                self._provider,
                self._config,
                session_id=session_id,
                on_update=on_update,
            )
            self._sessions[session_id] = session
            log.debug("Search session opened", session_id=session_id)
        return session

    async def close_session(self, session_id: str) -> bool:
        """Close and forget a session.

        Returns:
            True if the session existed
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.close()
        log.debug("Search session closed", session_id=session_id)
        return True

    async def close(self) -> None:
        for session_id in list(self._sessions):
            await self.close_session(session_id)
