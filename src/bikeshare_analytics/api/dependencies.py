"""FastAPI dependency injection providers.

Provides reusable dependencies for routes:
- Data store singleton (engine + connection pool)
- Schema catalog singleton (sampled once, shared by all requests)
- Query translator singleton

Tests replace these through app.dependency_overrides.
"""

from typing import Annotated

from fastapi import Depends

from bikeshare_analytics.core.nl_query_engine import QueryTranslator
from bikeshare_analytics.core.schema_catalog import SchemaCatalog
from bikeshare_analytics.storage.database import build_engine
from bikeshare_analytics.storage.datastore import PostgresDataStore

# ============================================================================
# Process-wide Singletons
# ============================================================================

# One engine, one catalog and one translator per process
_datastore: PostgresDataStore | None = None
_catalog: SchemaCatalog | None = None
_translator: QueryTranslator | None = None


def get_datastore() -> PostgresDataStore:
    """Get or create the process data store.

    The engine connects lazily, so creating it never fails on a missing database.

    Returns:
        PostgresDataStore: Shared data store
    """
    global _datastore
    if _datastore is None:
        _datastore = PostgresDataStore(build_engine())
    return _datastore


def get_catalog() -> SchemaCatalog:
    """Get or create the process schema catalog (populated on first translation).

    Returns:
        SchemaCatalog: Shared catalog backed by the data store
    """
    global _catalog
    if _catalog is None:
        _catalog = SchemaCatalog(get_datastore())
    return _catalog


def get_translator() -> QueryTranslator:
    """Get or create the process query translator.

    Returns:
        QueryTranslator: Shared translator over the shared catalog
    """
    global _translator
    if _translator is None:
        _translator = QueryTranslator(get_catalog())
    return _translator


def reset_singletons() -> None:
    """Drop cached instances (used when configuration changes, e.g. in tests)."""
    global _datastore, _catalog, _translator
    _datastore = None
    _catalog = None
    _translator = None


# ============================================================================
# Type Aliases for Route Injection
# ============================================================================

DataStoreDep = Annotated[PostgresDataStore, Depends(get_datastore)]
CatalogDep = Annotated[SchemaCatalog, Depends(get_catalog)]
TranslatorDep = Annotated[QueryTranslator, Depends(get_translator)]
