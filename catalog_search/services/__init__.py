"""Service layer for search, ranking, enrichment and external integrations."""

from .catalog_store import CatalogStore, InMemoryCatalogStore, normalize_franchise_names
from .config import ConfigurationService, ValidationResult
from .enrichment import DeferredProvider, EnrichmentProvider, EnrichmentScheduler
from .errors import (
    AppError,
    CatalogError,
    ConfigurationError,
    ErrorCategory,
    ErrorHandlingService,
    ErrorSeverity,
    InvalidLimit,
    InvalidQuery,
    NetworkError,
    ProviderError,
    UserFriendlyError,
    ValidationError,
    get_error_service,
    handle_error,
)
from .http_client import HttpClientService
from .igdb_provider import IgdbEnrichmentProvider
from .lookup import lookup_cached
from .query import normalize_limit, normalize_query
from .ranking import (
    CATEGORY_PRIORITY,
    FRANCHISE_RULES,
    extract_franchise_from_title,
    franchises_for,
    group_and_rank,
    score,
)
from .reconciler import ResultReconciler
from .search_session import SearchService, SearchSession

__all__ = [
    "AppError",
    "CATEGORY_PRIORITY",
    "CatalogError",
    "CatalogStore",
    "ConfigurationError",
    "ConfigurationService",
    "DeferredProvider",
    "EnrichmentProvider",
    "EnrichmentScheduler",
    "ErrorCategory",
    "ErrorHandlingService",
    "ErrorSeverity",
    "FRANCHISE_RULES",
    "HttpClientService",
    "IgdbEnrichmentProvider",
    "InMemoryCatalogStore",
    "InvalidLimit",
    "InvalidQuery",
    "NetworkError",
    "ProviderError",
    "ResultReconciler",
    "SearchService",
    "SearchSession",
    "UserFriendlyError",
    "ValidationError",
    "ValidationResult",
    "extract_franchise_from_title",
    "franchises_for",
    "get_error_service",
    "group_and_rank",
    "handle_error",
    "lookup_cached",
    "normalize_franchise_names",
    "normalize_limit",
    "normalize_query",
    "score",
]
