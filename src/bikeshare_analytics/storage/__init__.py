"""Storage module for PostgreSQL schema discovery and query execution."""

from bikeshare_analytics.storage.database import build_engine, database_url
from bikeshare_analytics.storage.datastore import PostgresDataStore, to_named_binds

__all__ = ["build_engine", "database_url", "PostgresDataStore", "to_named_binds"]
