"""
Schema Catalog - cached column metadata for the bike-share database.

Holds every (table, column, declared type) triple plus a sample of distinct
stored values for low-cardinality text columns. The catalog is an explicit
object passed to the mapper and assemblers; it is refreshed lazily on first
use and replaced atomically, so redundant refreshes are harmless.
"""

import threading
from dataclasses import dataclass, field
from typing import Literal, Protocol

import structlog

from bikeshare_analytics.core.nl_query_config import MAX_SAMPLED_COLUMNS, SAMPLE_VALUE_LIMIT

logger = structlog.get_logger()

TypeCategory = Literal["temporal", "numeric", "text", "other"]

_NUMERIC_TYPE_MARKERS = ("numeric", "integer", "bigint", "smallint", "double", "real", "decimal")
_TEXT_TYPE_MARKERS = ("character", "text", "varchar")


def categorize_type(data_type: str) -> TypeCategory:
    """Collapse a declared SQL type into the category used for scoring."""
    lowered = data_type.lower()
    if "timestamp" in lowered or "date" in lowered:
        return "temporal"
    if any(marker in lowered for marker in _NUMERIC_TYPE_MARKERS):
        return "numeric"
    if any(marker in lowered for marker in _TEXT_TYPE_MARKERS):
        return "text"
    return "other"


@dataclass(frozen=True)
class ColumnDescriptor:
    """One cataloged column."""

    table_name: str
    column_name: str
    data_type: str  # Declared type as reported by information_schema
    sampled_values: tuple[str, ...] = field(default_factory=tuple)  # Distinct values (text columns only)

    @property
    def type_category(self) -> TypeCategory:
        return categorize_type(self.data_type)


class SchemaSource(Protocol):
    """Collaborator that can introspect the live database."""

    def list_columns(self) -> list[ColumnDescriptor]: ...

    def sample_values(self, table: str, column: str, limit: int = SAMPLE_VALUE_LIMIT) -> list[str]: ...


class SchemaCatalog:
    """
    Process-scoped cache of column metadata.

    Lifecycle:
    - initialize(): eager refresh (API startup)
    - refresh_if_empty(): lazy refresh on first translation
    - refresh(): manual re-fetch, overwrites the cache in one assignment
    """

    def __init__(
        self,
        source: SchemaSource,
        sample_limit: int = SAMPLE_VALUE_LIMIT,
        max_sampled_columns: int = MAX_SAMPLED_COLUMNS,
    ):
        self._source = source
        self._sample_limit = sample_limit
        self._max_sampled_columns = max_sampled_columns
        self._columns: tuple[ColumnDescriptor, ...] = ()
        self._lock = threading.Lock()

    @classmethod
    def from_columns(cls, columns: list[ColumnDescriptor]) -> "SchemaCatalog":
        """Build a pre-populated catalog with no live source (used by tests and tooling)."""
        catalog = cls(source=_StaticSource(columns))
        catalog._columns = tuple(columns)
        return catalog

    def initialize(self) -> None:
        self.refresh()

    def refresh(self) -> tuple[ColumnDescriptor, ...]:
        """
        Re-read column metadata and value samples from the source.

        Returns:
            The new cached column tuple
        """
        raw_columns = self._source.list_columns()

        sampled: list[ColumnDescriptor] = []
        sampled_count = 0
        for column in raw_columns:
            if column.type_category == "text" and sampled_count < self._max_sampled_columns:
                sampled_count += 1
                values = self._sample(column)
                column = ColumnDescriptor(
                    table_name=column.table_name,
                    column_name=column.column_name,
                    data_type=column.data_type,
                    sampled_values=tuple(values),
                )
            sampled.append(column)

        with self._lock:
            self._columns = tuple(sampled)

        logger.info(
            "schema_catalog_refreshed",
            columns=len(sampled),
            tables=len(self.tables()),
            sampled_columns=sampled_count,
        )
        return self._columns

    def refresh_if_empty(self) -> bool:
        """Refresh only when nothing is cached. Returns True if a refresh ran."""
        if self._columns:
            return False
        self.refresh()
        return True

    def _sample(self, column: ColumnDescriptor) -> list[str]:
        try:
            values = self._source.sample_values(column.table_name, column.column_name, self._sample_limit)
        except Exception as e:
            logger.warning(
                "schema_catalog_sample_failed",
                table=column.table_name,
                column=column.column_name,
                error=str(e),
            )
            return []
        return [str(v) for v in values if v is not None][: self._sample_limit]

    @property
    def columns(self) -> tuple[ColumnDescriptor, ...]:
        return self._columns

    @property
    def is_empty(self) -> bool:
        return not self._columns

    def tables(self) -> list[str]:
        """Table names in declaration order."""
        seen: dict[str, None] = {}
        for column in self._columns:
            seen.setdefault(column.table_name, None)
        return list(seen)

    def has_table(self, table: str) -> bool:
        return any(c.table_name == table for c in self._columns)

    def column_names(self) -> set[str]:
        return {c.column_name for c in self._columns}

    def columns_for(self, table: str) -> list[ColumnDescriptor]:
        return [c for c in self._columns if c.table_name == table]

    def find(self, column_name: str, table: str | None = None) -> ColumnDescriptor | None:
        """Look up a column by name, optionally restricted to one table."""
        for column in self._columns:
            if column.column_name == column_name and (table is None or column.table_name == table):
                return column
        return None

    def owner_of(self, column_name: str) -> str | None:
        found = self.find(column_name)
        return found.table_name if found else None

    def summary(self) -> str:
        """Compact `table(col, col, ...)` listing used in LLM prompts."""
        lines = []
        for table in self.tables():
            names = ", ".join(c.column_name for c in self.columns_for(table))
            lines.append(f"{table}({names})")
        return "\n".join(lines)


class _StaticSource:
    """In-memory SchemaSource backing SchemaCatalog.from_columns()."""

    def __init__(self, columns: list[ColumnDescriptor]):
        self._columns = list(columns)

    def list_columns(self) -> list[ColumnDescriptor]:
        return list(self._columns)

    def sample_values(self, table: str, column: str, limit: int = SAMPLE_VALUE_LIMIT) -> list[str]:
        for descriptor in self._columns:
            if descriptor.table_name == table and descriptor.column_name == column:
                return list(descriptor.sampled_values[:limit])
        return []
