"""Debounced, single-flight enrichment of the catalog from an external provider."""

import asyncio
from collections.abc import Callable
from typing import Protocol

import structlog

from ..models import CatalogEntry, EnrichmentState
from .errors import handle_error

log = structlog.stdlib.get_logger()


class EnrichmentProvider(Protocol):
    """External source that refreshes the catalog for a query."""

    async def enrich(self, query: str, limit: int, min_cached_results: int) -> list[CatalogEntry]:
        """Fetch games for query, upsert them into the catalog and return them."""
        ...


EnrichmentCallback = Callable[[str, list[CatalogEntry]], object]


class DeferredProvider:
    """Builds the real provider on the first enrichment.

    Lets callers wire a session without creating network clients that a
    cache-only search never uses.
    """

    def __init__(self, factory: Callable[[], EnrichmentProvider]) -> None:
        self._factory = factory
        self._provider: EnrichmentProvider | None = None

    @property
    def is_built(self) -> bool:
        return self._provider is not None

    async def enrich(self, query: str, limit: int, min_cached_results: int) -> list[CatalogEntry]:
        if self._provider is None:
            self._provider = self._factory()
        return await self._provider.enrich(query, limit, min_cached_results)


class EnrichmentScheduler:
    """Decides when a session's cached results need an external refresh.

    Each session moves through IDLE -> PENDING -> IN_FLIGHT -> IDLE:

    - a query with too few cached hits becomes pending and (re)starts the
      debounce timer; a newer query replaces it and restarts the timer
    - when the timer runs out the provider is called once for the latest
      pending query, but never while another call of this session is
      still in flight; the pending query then waits for that call
    - a finished call hands its entries to the completion callback, a
      failed one is logged and dropped

    Dispatched calls are never cancelled. Must be used from a running
    event loop.
    """

    def __init__(
        self,
        provider: EnrichmentProvider,
        on_complete: EnrichmentCallback,
        debounce_delay: float = 0.5,
        min_cached_results: int = 10,
        provider_limit: int = 20,
        session_id: str = "default",
    ) -> None:
        """Initialize the enrichment scheduler.

        Args:
            provider: External provider that refreshes the catalog
            on_complete: Called with (query, entries) after a successful call
            debounce_delay: Quiet period in seconds before the provider is called
            min_cached_results: Cached hit count below which a query is enriched
            provider_limit: Number of games requested from the provider
            session_id: Identifier used in log events
        """
        self.debounce_delay = debounce_delay
        self.min_cached_results = min_cached_results
        self.provider_limit = provider_limit
        self.session_id = session_id
        self.dispatch_count = 0

        self._provider = provider
        self._on_complete = on_complete
        self._timer: asyncio.Task[None] | None = None
        self._in_flight: asyncio.Task[None] | None = None
        self._pending_query: str | None = None
        self._in_flight_query: str | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def state(self) -> EnrichmentState:
        if self._in_flight is not None:
            return EnrichmentState.IN_FLIGHT
        if self._pending_query is not None:
            return EnrichmentState.PENDING
        return EnrichmentState.IDLE

    @property
    def pending_query(self) -> str | None:
        return self._pending_query

    @property
    def in_flight_query(self) -> str | None:
        return self._in_flight_query

    def is_enriching(self, query: str) -> bool:
        """Whether an enrichment for this query is pending or in flight."""
        return query in (self._pending_query, self._in_flight_query)

    def notify(self, query: str, cached_count: int) -> bool:
        """React to a new active query.

        Args:
            query: Normalized query that just became active
            cached_count: Number of cached hits shown for it

        Returns:
            True if an enrichment is now pending for this query
        """
        if cached_count >= self.min_cached_results:
            if self._pending_query is not None:
                log.debug(
                    "Pending enrichment superseded",
                    session_id=self.session_id,
                    superseded=self._pending_query,
                    query=query,
                )
            self._cancel_timer()
            return False

        self._cancel_timer()
        self._pending_query = query
        self._timer = asyncio.create_task(self._debounce(query))

        log.debug(
            "Enrichment pending",
            session_id=self.session_id,
            query=query,
            cached_count=cached_count,
            min_cached_results=self.min_cached_results,
            in_flight=self._in_flight_query,
        )
        return True

    async def wait_idle(self) -> None:
        """Wait until nothing is pending or in flight."""
        while True:
            running = [
                task for task in (self._timer, self._in_flight)
                if task is not None and not task.done()
            ]
            if not running:
                return
            await asyncio.wait(running)

    async def close(self) -> None:
        """Drop any pending enrichment and let an in-flight call finish."""
        self._cancel_timer()
        if self._in_flight is not None:
            await asyncio.wait([self._in_flight])
        log.debug("Enrichment scheduler closed", session_id=self.session_id)

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None
        self._pending_query = None

    async def _debounce(self, query: str) -> None:
        await asyncio.sleep(self.debounce_delay)

        if self._in_flight is not None:
            log.debug(
                "Enrichment waiting for in-flight call",
                session_id=self.session_id,
                query=query,
                in_flight=self._in_flight_query,
            )
            await self._idle.wait()

        # A newer query would have cancelled this timer, so query is still the latest
        self._timer = None
        self._pending_query = None
        self._dispatch(query)

    def _dispatch(self, query: str) -> None:
        self.dispatch_count += 1
        self._in_flight_query = query
        self._idle.clear()
        self._in_flight = asyncio.create_task(self._run(query))
        log.info("Enrichment dispatched", session_id=self.session_id, query=query)

    async def _run(self, query: str) -> None:
        entries: list[CatalogEntry] | None = None
        try:
            entries = await self._provider.enrich(query, self.provider_limit, self.min_cached_results)
        except Exception as e:
            # Cached results stay authoritative when the provider fails
            handle_error(
                e,
                operation="enrich",
                component="enrichment_scheduler",
                context={"query": query, "session_id": self.session_id},
            )
        finally:
            self._in_flight = None
            self._in_flight_query = None
            self._idle.set()

        if entries is None:
            return

        log.info(
            "Enrichment completed",
            session_id=self.session_id,
            query=query,
            fetched=len(entries),
        )
        try:
            self._on_complete(query, entries)
        except Exception as e:
            handle_error(
                e,
                operation="reconcile",
                component="enrichment_scheduler",
                context={"query": query, "session_id": self.session_id},
            )
