"""Database configuration for the bike-share PostgreSQL database.

Provides the SQLAlchemy engine used by the data store.

DATABASE_URL wins when set; otherwise the URL is composed from the standard
libpq variables (PGHOST, PGPORT, PGUSER, PGPASSWORD, PGDATABASE, PGSSLMODE).
"""

import os

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine


def database_url() -> str | URL:
    """Resolve the connection URL from the environment."""
    explicit = os.getenv("DATABASE_URL")
    if explicit:
        return explicit

    query = {}
    sslmode = os.getenv("PGSSLMODE")
    if sslmode:
        query["sslmode"] = sslmode

    return URL.create(
        "postgresql+psycopg2",
        username=os.getenv("PGUSER", "postgres"),
        password=os.getenv("PGPASSWORD") or None,
        host=os.getenv("PGHOST", "localhost"),
        port=int(os.getenv("PGPORT", "5432")),
        database=os.getenv("PGDATABASE", "bikeshare"),
        query=query,
    )


def build_engine(url: str | URL | None = None) -> Engine:
    """Create the engine (lazy: no connection is opened until first use)."""
    return create_engine(
        url or database_url(),
        pool_pre_ping=True,
        echo=os.getenv("SQL_ECHO", "false").lower() == "true",  # Log SQL for debugging
    )
