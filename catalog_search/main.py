"""Command-line entry point for the game catalog search.

This module provides:
- Command-line argument parsing
- Service wiring with lazy initialization
- A one-shot search that waits for background enrichment
"""

import argparse
import asyncio
import sys
from pathlib import Path

import structlog

from . import __version__
from .models import FranchiseGroups, SearchConfig, SearchResponse
from .services.catalog_store import InMemoryCatalogStore
from .services.config import ConfigurationService, VALID_LOG_LEVELS
from .services.enrichment import DeferredProvider
from .services.errors import AppError, ErrorCategory, get_error_service
from .services.http_client import HttpClientService
from .services.igdb_provider import IgdbEnrichmentProvider
from .services.logging import setup_logging
from .services.search_session import SearchService

log = structlog.stdlib.get_logger()

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID_INPUT = 2


class ApplicationContext:
    """Container for application services.

    Services are created on first use. The IGDB provider and its HTTP
    client are only built once an enrichment is actually dispatched, so a
    cache-only run never opens a connection.
    """

    def __init__(
        self,
        config_path: Path | None = None,
        catalog_path: Path | None = None,
    ) -> None:
        self._config_path: Path | None = config_path
        self._catalog_path: Path | None = catalog_path

        self._config_service: ConfigurationService | None = None
        self._config: SearchConfig | None = None
        self._store: InMemoryCatalogStore | None = None
        self._http_client: HttpClientService | None = None
        self._provider: IgdbEnrichmentProvider | None = None
        self._search_service: SearchService | None = None

    @property
    def config_service(self) -> ConfigurationService:
        if self._config_service is None:
            self._config_service = ConfigurationService(config_path=self._config_path)
        return self._config_service

    @property
    def config(self) -> SearchConfig:
        if self._config is None:
            self._config = self.config_service.load_config()
        return self._config

    @property
    def catalog_path(self) -> Path:
        return self._catalog_path or self.config.catalog_path

    @property
    def store(self) -> InMemoryCatalogStore:
        """The catalog store, loaded from its snapshot on first use."""
        if self._store is None:
            store = InMemoryCatalogStore()
            # Only a loaded store is kept, so cleanup never saves over a snapshot it could not read
            store.load(self.catalog_path)
            self._store = store
        return self._store

    @property
    def http_client(self) -> HttpClientService:
        if self._http_client is None:
            self._http_client = HttpClientService(
                timeout=self.config.request_timeout,
                max_retries=self.config.max_retries,
                rate_limit_delay=self.config.rate_limit_delay,
            )
        return self._http_client

    @property
    def provider(self) -> IgdbEnrichmentProvider:
        if self._provider is None:
            self._provider = IgdbEnrichmentProvider.from_env(self.http_client, self.store)
        return self._provider

    @property
    def search_service(self) -> SearchService:
        if self._search_service is None:
            self._search_service = SearchService(self.store, DeferredProvider(lambda: self.provider), self.config)
        return self._search_service

    async def cleanup(self) -> None:
        """Settle sessions, persist the catalog and close connections."""
        log.debug("Cleaning up application resources")

        if self._search_service is not None:
            await self._search_service.close()

        if self._store is not None:
            self._store.save(self.catalog_path)

        if self._http_client is not None:
            await self._http_client.close()


class ParsedArgs:
    """Type-safe container for parsed command-line arguments."""

    def __init__(
        self,
        query: str,
        limit: int | None,
        config: Path | None,
        catalog: Path | None,
        log_level: str | None,
        log_dir: Path | None,
        no_enrich: bool,
    ) -> None:
        self.query: str = query
        self.limit: int | None = limit
        self.config: Path | None = config
        self.catalog: Path | None = catalog
        self.log_level: str | None = log_level
        self.log_dir: Path | None = log_dir
        self.no_enrich: bool = no_enrich


def parse_arguments(argv: list[str] | None = None) -> ParsedArgs:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="catalog-search",
        description="Search the cached game catalog, ranked by franchise",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  catalog-search zelda                 Search, refreshing from IGDB if needed
  catalog-search "final fantasy" -n 5  Show at most 5 games
  catalog-search mario --no-enrich     Only use the local cache

IGDB enrichment needs IGDB_CLIENT_ID and IGDB_CLIENT_SECRET in the environment.
        """,
    )

    _ = parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    _ = parser.add_argument("query", help="Text to look for in game titles")
    _ = parser.add_argument(
        "-n", "--limit",
        type=int,
        default=None,
        help="Maximum number of games to show (default from configuration)",
    )
    _ = parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: ~/.config/game-catalog-search/config.json)",
    )
    _ = parser.add_argument(
        "--catalog",
        type=Path,
        default=None,
        help="Path to the catalog cache file (overrides the configuration)",
    )
    _ = parser.add_argument(
        "--log-level",
        choices=sorted(VALID_LOG_LEVELS),
        default=None,
        help="Set the logging level (default from configuration)",
    )
    _ = parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Directory for log files (default: console only)",
    )
    _ = parser.add_argument(
        "--no-enrich",
        action="store_true",
        help="Do not wait for IGDB enrichment",
    )

    ns = parser.parse_args(argv)
    return ParsedArgs(
        query=ns.query,
        limit=ns.limit,
        config=ns.config,
        catalog=ns.catalog,
        log_level=ns.log_level,
        log_dir=ns.log_dir,
        no_enrich=bool(ns.no_enrich),
    )


def format_groups(groups: FranchiseGroups) -> str:
    """Render ranked franchise groups as plain text.

    Groups are ordered by the score of their best entry.
    """
    if not groups:
        return "No cached games found."

    ordered = sorted(groups.items(), key=lambda item: item[1][0].score, reverse=True)
    lines: list[str] = []
    for label, ranked in ordered:
        lines.append(label)
        for item in ranked:
            lines.append(f"  {item.rank_within_group:>2}. {item.entry.title}  ({item.score:.1f})")
    return "\n".join(lines)


async def run_search(context: ApplicationContext, args: ParsedArgs) -> int:
    """Run one search and print the results.

    Returns:
        Exit code
    """
    try:
        session = context.search_service.open_session("cli")
        response = session.search(args.query, args.limit)
        print(format_groups(response.groups))

        if response.enriching and not args.no_enrich:
            print("\nLooking for more games on IGDB...", file=sys.stderr)
            await session.wait_idle()
            refreshed: SearchResponse | None = session.current()
            if refreshed is not None and refreshed.groups != response.groups:
                print("\nUpdated results:")
                print(format_groups(refreshed.groups))
        return EXIT_OK

    except AppError as e:
        friendly = get_error_service().handle_error(e, operation="search", component="cli")
        print(get_error_service().create_user_message(friendly), file=sys.stderr)
        return EXIT_INVALID_INPUT if e.category is ErrorCategory.VALIDATION else EXIT_ERROR

    finally:
        await context.cleanup()


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the application."""
    args = parse_arguments(argv)
    context = ApplicationContext(config_path=args.config, catalog_path=args.catalog)

    # Configure logging before the configuration service logs anything
    _ = setup_logging(log_level=args.log_level or "INFO", log_dir=args.log_dir)
    if args.log_level is None and context.config.log_level != "INFO":
        _ = setup_logging(log_level=context.config.log_level, log_dir=args.log_dir)
    log.debug("Starting catalog search", version=__version__, query=args.query)

    try:
        exit_code = asyncio.run(run_search(context, args))

    except KeyboardInterrupt:
        log.info("Search interrupted by user")
        exit_code = 130

    except AppError as e:
        # Catalog snapshot failures surface here from cleanup or first store access
        print(get_error_service().create_user_message(e.to_user_friendly()), file=sys.stderr)
        exit_code = EXIT_ERROR

    log.debug("Application exiting", exit_code=exit_code)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
