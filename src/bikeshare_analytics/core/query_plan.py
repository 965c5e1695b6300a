"""
QueryPlan Contract

Structured types passed between the rule cascades and the plan assembler, and
the immutable QueryPlan returned by translation.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Literal

Operator = Literal["=", ">", "<", ">=", "<=", "ILIKE", "IN", "WEEKEND", "WEEKDAY", "DIMENSION"]

OPERATORS: tuple[str, ...] = ("=", ">", "<", ">=", "<=", "ILIKE", "IN", "WEEKEND", "WEEKDAY", "DIMENSION")
FLAG_OPERATORS = ("WEEKEND", "WEEKDAY", "DIMENSION")  # Render without a bound parameter

AggregateFunction = Literal["AVG", "SUM", "COUNT", "MIN", "MAX", "SPEED", "DURATION"]

# Synthetic measure name for the DURATION pseudo-function (ended_at - started_at)
DURATION_MEASURE = "ride_duration"

FilterValue = str | int | float | date | list[str | int | float] | None


@dataclass(frozen=True)
class FilterPredicate:
    """Single filter condition or grouping-intent carrier."""

    column: str  # Catalog column name, or grouping tag for DIMENSION
    operator: Operator
    value: FilterValue = None  # None for WEEKEND / WEEKDAY / DIMENSION
    table: str | None = None  # Owning table (or the end_stations join role)

    def __post_init__(self) -> None:
        if self.operator not in OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.operator}")
        if self.operator == "IN" and not isinstance(self.value, list):
            raise ValueError("IN filter requires a list value")

    @property
    def is_dimension(self) -> bool:
        return self.operator == "DIMENSION"

    @property
    def is_date_bound(self) -> bool:
        return isinstance(self.value, date) and self.operator in (">=", "<", ">", "<=", "=")


@dataclass(frozen=True)
class AggregationRequest:
    """One aggregate expression for the SELECT list."""

    function: AggregateFunction
    column: str  # Source column, "*" for COUNT(*), or DURATION_MEASURE
    alias: str  # Output column name
    table: str | None = None  # Owning table of column
    unit_scale: float | None = None  # Multiplier applied before aggregation output (meters -> km)


@dataclass(frozen=True)
class QueryPlan:
    """Immutable result of one translation."""

    query_text: str
    parameters: tuple[FilterValue, ...]  # Positional values for $1..$n
    primary_table: str
    tables: list[str]  # Primary table followed by joined tables
    columns: list[str]  # Mapped (relevant) column names
    filters: list[FilterPredicate] = field(default_factory=list)
    aggregations: list[AggregationRequest] = field(default_factory=list)
    joins: dict[str, str] = field(default_factory=dict)  # alias -> table
