"""
PostgresDataStore - read-only access to the bike-share database.

Two responsibilities:
- Schema discovery for the SchemaCatalog (information_schema + value sampling)
- Execution of translated plans ($1..$n placeholders, positional parameters)

The translator never talks to the database; callers hand a QueryPlan's text
and parameters to execute().
"""

import logging
import re
from collections.abc import Sequence
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from bikeshare_analytics.core.errors import QueryExecutionError
from bikeshare_analytics.core.nl_query_config import SAMPLE_VALUE_LIMIT
from bikeshare_analytics.core.schema_catalog import ColumnDescriptor

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$(\d+)")

_COLUMNS_QUERY = """
SELECT table_name, column_name, data_type
FROM information_schema.columns
WHERE table_schema = 'public'
ORDER BY table_name, ordinal_position
"""

_TABLES_QUERY = """
SELECT table_name
FROM information_schema.tables
WHERE table_schema = 'public' AND table_type = 'BASE TABLE'
ORDER BY table_name
"""


def to_named_binds(query_text: str, parameters: Sequence[Any]) -> tuple[str, dict[str, Any]]:
    """
    Rewrite `$n` placeholders into SQLAlchemy named binds.

    Args:
        query_text: SQL with $1..$n placeholders
        parameters: Positional values ($1 is parameters[0])

    Returns:
        (SQL with :p1..:pn, {"p1": value, ...})

    Raises:
        QueryExecutionError: If a placeholder has no matching parameter
    """
    referenced = {int(n) for n in _PLACEHOLDER.findall(query_text)}
    missing = [n for n in referenced if n < 1 or n > len(parameters)]
    if missing:
        raise QueryExecutionError(
            f"Query references placeholders without parameters: {sorted(missing)}", query_text=query_text
        )

    named = _PLACEHOLDER.sub(lambda m: f":p{m.group(1)}", query_text)
    binds = {f"p{n}": parameters[n - 1] for n in sorted(referenced)}
    return named, binds


class PostgresDataStore:
    """
    Schema source and query executor over a SQLAlchemy engine.

    Implements the SchemaSource protocol (list_columns, sample_values).
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        logger.info(f"Initialized PostgresDataStore for {engine.url.render_as_string(hide_password=True)}")

    def _quote(self, identifier: str) -> str:
        return self.engine.dialect.identifier_preparer.quote(identifier)

    def list_tables(self) -> list[str]:
        """
        List base tables in the public schema.

        Returns:
            Table names, alphabetically
        """
        with self.engine.connect() as conn:
            return [row[0] for row in conn.execute(text(_TABLES_QUERY))]

    def list_columns(self) -> list[ColumnDescriptor]:
        """
        List every public column as a ColumnDescriptor (no samples yet).

        Returns:
            Columns ordered by table name, then ordinal position
        """
        with self.engine.connect() as conn:
            rows = conn.execute(text(_COLUMNS_QUERY)).fetchall()
        columns = [ColumnDescriptor(table_name=r[0], column_name=r[1], data_type=r[2]) for r in rows]
        logger.debug(f"Discovered {len(columns)} columns in public schema")
        return columns

    def sample_values(self, table: str, column: str, limit: int = SAMPLE_VALUE_LIMIT) -> list[str]:
        """
        Up to `limit` distinct non-null values of a column, as strings.

        Identifiers come from information_schema and are quoted by the dialect;
        the limit is bound as a parameter.
        """
        query = text(
            f"SELECT DISTINCT {self._quote(column)} FROM {self._quote(table)} "
            f"WHERE {self._quote(column)} IS NOT NULL LIMIT :limit"
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query, {"limit": limit}).fetchall()
        return [str(row[0]) for row in rows]

    def execute(self, query_text: str, parameters: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """
        Execute a translated plan.

        Args:
            query_text: SQL with $1..$n placeholders
            parameters: Positional parameter values

        Returns:
            One dict per result row (column name -> value)

        Raises:
            QueryExecutionError: If binding or execution fails
        """
        named, binds = to_named_binds(query_text, parameters)
        try:
            with self.engine.connect() as conn:
                result = conn.execute(text(named), binds)
                rows = [dict(row._mapping) for row in result]
        except SQLAlchemyError as e:
            logger.error(f"Query execution failed: {e}")
            raise QueryExecutionError(f"Query execution failed: {e.__class__.__name__}", query_text=query_text) from e

        logger.info(f"Executed query returning {len(rows)} rows")
        return rows
