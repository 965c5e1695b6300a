"""
Aggregation assembly.

An ordered cascade of (predicate, builder) rules decides which aggregate a
question asks for. The first rule that applies wins and the cascade stops.

Ordering notes:
- Duration, distance, ranking and count come first; the named phrasings only
  refine questions none of those match.
- "km/h" style rates are speed, so the distance rule skips speed questions.
- The bike-inventory rule yields no aggregation (row listing).
"""

import re
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from bikeshare_analytics.core.mapper import ColumnMapping
from bikeshare_analytics.core.nl_query_config import FACT_TABLE, METERS_TO_KM
from bikeshare_analytics.core.query_cues import (
    AVERAGE_WORDS,
    COUNT_WORDS,
    DISTANCE_WORDS,
    is_bike_inventory_query,
    is_duration_query,
    is_ranking_query,
    is_speed_query,
    mentions,
)
from bikeshare_analytics.core.query_plan import DURATION_MEASURE, AggregationRequest
from bikeshare_analytics.core.schema_catalog import ColumnDescriptor, SchemaCatalog

logger = structlog.get_logger()

_TOP_BY_AVERAGE = re.compile(r"\btop\s+\d+\b.*\bby\s+(?:average|avg|mean)\s+([a-z ]+)")
_DISTANCE_NAME_PARTS = ("distance", "km", "meter", "metre")


@dataclass
class AggregationContext:
    """Inputs the aggregation rules may inspect."""

    text: str
    columns: list[ColumnMapping]
    primary_table: str
    catalog: SchemaCatalog

    def __post_init__(self) -> None:
        self.lowered = self.text.lower()


@dataclass(frozen=True)
class AggregationRule:
    """Named (predicate, builder) pair; first applicable rule wins."""

    name: str
    applies: Callable[[AggregationContext], bool]
    build: Callable[[AggregationContext], list[AggregationRequest]]


def is_identifier_column(column_name: str) -> bool:
    """`id`, `*_id` and `id_*` columns are identifiers, never averaged."""
    tokens = column_name.lower().split("_")
    return tokens[0] == "id" or tokens[-1] == "id"


def distance_column(ctx: AggregationContext) -> ColumnDescriptor | None:
    """Best distance column: mapper ranking first, then catalog order (fact table preferred)."""
    for mapped in ctx.columns:
        if mapped.type_category == "numeric" and any(p in mapped.column_name for p in _DISTANCE_NAME_PARTS):
            return ctx.catalog.find(mapped.column_name, mapped.table_name)
    candidates = [
        c
        for c in ctx.catalog.columns
        if c.type_category == "numeric" and any(p in c.column_name for p in _DISTANCE_NAME_PARTS)
    ]
    candidates.sort(key=lambda c: c.table_name != FACT_TABLE)
    return candidates[0] if candidates else None


def _unit_scale(column: ColumnDescriptor) -> float | None:
    name = column.column_name.lower()
    if "km" in name or "kilomet" in name:
        return None
    if "meter" in name or "metre" in name or name.endswith("_m"):
        return METERS_TO_KM
    return None


def _distance_alias(column: ColumnDescriptor, prefix: str) -> str:
    name = column.column_name.lower()
    is_km = "km" in name or "kilomet" in name
    if is_km or _unit_scale(column) is not None:
        return f"{prefix}_kilometres"
    return f"{prefix}_distance"


def _count(alias: str) -> list[AggregationRequest]:
    return [AggregationRequest("COUNT", "*", alias)]


def _duration(alias: str = "average_ride_time_minutes") -> list[AggregationRequest]:
    return [AggregationRequest("DURATION", DURATION_MEASURE, alias, table=FACT_TABLE)]


def _build_duration(ctx: AggregationContext) -> list[AggregationRequest]:
    if mentions(ctx.lowered, "mean") and not mentions(ctx.lowered, "average", "avg"):
        return _duration("mean_trip_duration_minutes")
    return _duration()


def _build_distance(ctx: AggregationContext) -> list[AggregationRequest]:
    column = distance_column(ctx)
    if column is None:
        return []
    match = _TOP_BY_AVERAGE.search(ctx.lowered)
    if match and mentions(match.group(1), *DISTANCE_WORDS):
        return [
            AggregationRequest("AVG", column.column_name, "average_distance", column.table_name, _unit_scale(column))
        ]
    return [
        AggregationRequest(
            "SUM", column.column_name, _distance_alias(column, "total"), column.table_name, _unit_scale(column)
        )
    ]


def _build_ranking(ctx: AggregationContext) -> list[AggregationRequest]:
    if mentions(ctx.lowered, "arrival", "arrivals"):
        return _count("arrival_count")
    return _count("departure_count")


def _build_speed(ctx: AggregationContext) -> list[AggregationRequest]:
    column = distance_column(ctx)
    if column is None:
        return []
    return [AggregationRequest("SPEED", column.column_name, "average_speed_kmh", column.table_name, _unit_scale(column))]


def _build_generic_average(ctx: AggregationContext) -> list[AggregationRequest]:
    for mapped in ctx.columns:
        if (
            mapped.table_name == ctx.primary_table
            and mapped.type_category == "numeric"
            and not is_identifier_column(mapped.column_name)
        ):
            return [AggregationRequest("AVG", mapped.column_name, "average_value", mapped.table_name)]
    logger.debug("aggregation_average_no_numeric_column", primary_table=ctx.primary_table)
    return _count("total_count")


def _has_distance_column(ctx: AggregationContext) -> bool:
    return distance_column(ctx) is not None


_AGGREGATION_RULES: list[AggregationRule] = [
    AggregationRule("average_duration", lambda ctx: is_duration_query(ctx.lowered), _build_duration),
    AggregationRule(
        "distance",
        lambda ctx: mentions(ctx.lowered, *DISTANCE_WORDS)
        and not is_speed_query(ctx.lowered)
        and _has_distance_column(ctx),
        _build_distance,
    ),
    AggregationRule("ranking", lambda ctx: is_ranking_query(ctx.lowered), _build_ranking),
    AggregationRule("count", lambda ctx: mentions(ctx.lowered, *COUNT_WORDS), lambda ctx: _count("total_count")),
    # Named phrasings
    AggregationRule(
        "weekend_departures",
        lambda ctx: mentions(ctx.lowered, "weekend", "weekends") and mentions(ctx.lowered, "departures"),
        lambda ctx: _count("weekend_departures"),
    ),
    AggregationRule(
        "rainy_weekdays",
        lambda ctx: mentions(ctx.lowered, "rain", "rainy", "wet") and mentions(ctx.lowered, "weekday", "weekdays"),
        lambda ctx: _count("rainy_weekday_rides"),
    ),
    AggregationRule(
        "total_rides",
        lambda ctx: mentions(ctx.lowered, "total rides", "rides in total")
        or (mentions(ctx.lowered, "rides") and mentions(ctx.lowered, "last month")),
        lambda ctx: _count("total_rides"),
    ),
    AggregationRule(
        "daily_totals",
        lambda ctx: mentions(ctx.lowered, "daily totals", "daily total", "per day", "each day"),
        lambda ctx: _count("ride_count"),
    ),
    # Speed returns before the generic average can claim the question
    AggregationRule(
        "speed",
        lambda ctx: is_speed_query(ctx.lowered) and _has_distance_column(ctx),
        _build_speed,
    ),
    AggregationRule("bike_inventory", lambda ctx: is_bike_inventory_query(ctx.lowered), lambda ctx: []),
    AggregationRule("generic_average", lambda ctx: mentions(ctx.lowered, *AVERAGE_WORDS), _build_generic_average),
]


def extract_aggregations(ctx: AggregationContext) -> list[AggregationRequest]:
    """
    Pick the aggregation for a question.

    Args:
        ctx: AggregationContext for the question

    Returns:
        Aggregations from the first matching rule; empty for row listings
    """
    for rule in _AGGREGATION_RULES:
        if rule.applies(ctx):
            aggregations = rule.build(ctx)
            logger.debug(
                "aggregation_selected",
                rule=rule.name,
                aggregations=[(a.function, a.column, a.alias) for a in aggregations],
            )
            return aggregations

    logger.debug("aggregation_none")
    return []
