"""
Filter assembly.

An ordered table of independent rules reads the question and accumulates
FilterPredicates. Rules are not mutually exclusive; each one that applies adds
predicates (the last-day rule replaces the date bounds it refines).

Columns are looked up in the mapper's ranked list first and then in the
catalog, so every emitted column name is a real catalog identifier.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from functools import cached_property

import structlog

from bikeshare_analytics.core.date_resolver import (
    DateRange,
    find_month_year,
    first_of_next_month,
    last_day_of_month,
    resolve_date_phrase,
)
from bikeshare_analytics.core.mapper import ColumnMapping
from bikeshare_analytics.core.nl_query_config import (
    DEFAULT_COLD_THRESHOLD_C,
    DEFAULT_HOT_THRESHOLD_C,
    END_STATION_ROLE,
    FACT_START_COLUMN,
    FACT_TABLE,
    KNOWN_LANDMARKS,
    STATION_NAME_COLUMN,
    STATION_TABLE,
    WEATHER_TABLE,
)
from bikeshare_analytics.core.query_cues import (
    FEMALE_WORDS,
    GENDER_WORDS,
    MALE_WORDS,
    is_ranking_query,
    is_trip_query,
    is_weather_query,
    mentions,
)
from bikeshare_analytics.core.query_plan import FilterPredicate
from bikeshare_analytics.core.schema_catalog import ColumnDescriptor, SchemaCatalog

logger = structlog.get_logger()

_NEGATED_RAIN = re.compile(r"\b(?:non[-\s]?rainy|not\s+rainy|no\s+rain|without\s+rain)\b")
_PRECIPITATION_COMPARISON = re.compile(
    r"\b(?:precipitation|rainfall|rain)\s*(>=|<=|>|<|=)\s*(\d+(?:\.\d+)?)"
    r"|\b(?:more than|over|above|at least)\s+(\d+(?:\.\d+)?)\s*mm\b"
)
_HOT_THRESHOLD = re.compile(r"\b(?:above|over|more than|hotter than)\s+(-?\d+(?:\.\d+)?)\s*(?:°\s*c?|degrees|c\b)")
_COLD_THRESHOLD = re.compile(r"\b(?:below|under|less than|colder than)\s+(-?\d+(?:\.\d+)?)\s*(?:°\s*c?|degrees|c\b)")
# "under 25" / "over 60" as ages: the number must not carry a unit
_AGE_PATTERN = re.compile(
    r"\b(under|over)\s+(\d{1,3})(?![\d.])"
    r"(?!\s*(?:km|kilomet|mm|min|hour|h\b|°|degree|c\b|%|m\b|met|mile|ride|trip|time|day))"
)
_LAST_DAY_PATTERN = re.compile(r"\blast\s+day\b")
_GROUPING_PATTERN = re.compile(
    r"\bby\s+(end station|start station|station|starts|trip distance|distance|day|date|gender|bike|model)s?\b"
)
_GROUPING_TAGS = {
    "end station": "end_station",
    "start station": "station",
    "station": "station",
    "starts": "station",
    "trip distance": "distance",
    "distance": "distance",
    "day": "date",
    "date": "date",
    "gender": "gender",
    "bike": "bike",
    "model": "bike",
}


@dataclass
class FilterContext:
    """Everything the filter rules may look at for one question."""

    text: str
    columns: list[ColumnMapping]
    primary_table: str
    catalog: SchemaCatalog
    today: date = field(default_factory=date.today)
    reference_year: int | None = None  # Age filters; defaults to today.year

    @cached_property
    def lowered(self) -> str:
        return self.text.lower()

    @cached_property
    def date_range(self) -> DateRange | None:
        return resolve_date_phrase(self.text, self.today)

    @property
    def age_reference_year(self) -> int:
        return self.reference_year or self.today.year

    def find_column(
        self,
        table: str | None = None,
        name_contains: tuple[str, ...] = (),
        category: str | None = None,
    ) -> ColumnDescriptor | None:
        """First matching column, preferring the mapper's ranking over catalog order."""

        def matches(table_name: str, column_name: str, type_category: str) -> bool:
            if table is not None and table_name != table:
                return False
            if name_contains and not any(part in column_name for part in name_contains):
                return False
            return category is None or type_category == category

        for mapped in self.columns:
            if matches(mapped.table_name, mapped.column_name, mapped.type_category):
                return self.catalog.find(mapped.column_name, mapped.table_name)
        for column in self.catalog.columns:
            if matches(column.table_name, column.column_name, column.type_category):
                return column
        return None


@dataclass(frozen=True)
class FilterRule:
    """Named (predicate, handler) pair in the ordered rule table."""

    name: str
    applies: Callable[[FilterContext], bool]
    apply: Callable[[FilterContext, list[FilterPredicate]], None]


def pick_date_column(ctx: FilterContext) -> ColumnDescriptor | None:
    """
    Choose the column a resolved date range applies to.

    Priority:
    1. Fact start timestamp for trip / ranking / gender questions
    2. Weather date when the question is about weather and not riders
    3. Any timestamp on the primary table
    4. Any timestamp at all
    """
    lowered = ctx.lowered
    if is_trip_query(lowered) or is_ranking_query(lowered) or mentions(lowered, *GENDER_WORDS):
        start_column = ctx.catalog.find(FACT_START_COLUMN, FACT_TABLE)
        if start_column is not None:
            return start_column

    if is_weather_query(lowered) and not mentions(lowered, "rider", "riders", *GENDER_WORDS):
        weather_date = ctx.find_column(table=WEATHER_TABLE, category="temporal")
        if weather_date is not None:
            return weather_date

    return ctx.find_column(table=ctx.primary_table, category="temporal") or ctx.find_column(category="temporal")


def _date_bounds(column: ColumnDescriptor, start: date, end: date) -> list[FilterPredicate]:
    return [
        FilterPredicate(column.column_name, ">=", start, column.table_name),
        FilterPredicate(column.column_name, "<", end, column.table_name),
    ]


def _apply_temporal(ctx: FilterContext, filters: list[FilterPredicate]) -> None:
    date_range = ctx.date_range
    column = pick_date_column(ctx)
    if date_range is None or column is None:
        logger.debug("filter_temporal_no_column", has_range=date_range is not None)
        return
    filters.extend(_date_bounds(column, date_range.start_date, date_range.end_date))


def _apply_gender(ctx: FilterContext, filters: list[FilterPredicate]) -> None:
    if mentions(ctx.lowered, *FEMALE_WORDS):
        column = ctx.find_column(table=FACT_TABLE, name_contains=("gender",), category="text")
        if column is not None:
            filters.append(FilterPredicate(column.column_name, "=", "female", column.table_name))
        return

    column = ctx.find_column(table=FACT_TABLE, name_contains=("gender", "rider"), category="text")
    if column is not None:
        filters.append(FilterPredicate(column.column_name, "ILIKE", "%male%", column.table_name))


def _station_mentions(ctx: FilterContext) -> list[tuple[str, int]]:
    """(stored station name, position) for every station named in the text."""
    found: dict[str, int] = {}
    for phrase, name in KNOWN_LANDMARKS.items():
        match = re.search(rf"(?<![a-z0-9]){re.escape(phrase)}(?![a-z0-9])", ctx.lowered)
        if match and name not in found:
            found[name] = match.start()

    station_name = ctx.catalog.find(STATION_NAME_COLUMN, STATION_TABLE)
    for value in station_name.sampled_values if station_name else ():
        if len(value) < 3 or value in found:
            continue
        match = re.search(rf"(?<![a-z0-9]){re.escape(value.lower())}(?![a-z0-9])", ctx.lowered)
        if match:
            found[value] = match.start()
    return sorted(found.items(), key=lambda item: item[1])


def _apply_location(ctx: FilterContext, filters: list[FilterPredicate]) -> None:
    column = ctx.catalog.find(STATION_NAME_COLUMN, STATION_TABLE)
    if column is None:
        return
    for name, position in _station_mentions(ctx):
        # "... to Congress Avenue" names the destination station
        destination = re.search(r"\bto\s+(?:the\s+)?$", ctx.lowered[:position]) is not None
        table = END_STATION_ROLE if destination else column.table_name
        filters.append(FilterPredicate(column.column_name, "=", name, table))


def _as_number(raw: str) -> int | float:
    return float(raw) if "." in raw else int(raw)


def _mentions_weather(ctx: FilterContext) -> bool:
    lowered = ctx.lowered
    return is_weather_query(lowered) or any(
        pattern.search(lowered) for pattern in (_PRECIPITATION_COMPARISON, _HOT_THRESHOLD, _COLD_THRESHOLD)
    )


def _apply_weather(ctx: FilterContext, filters: list[FilterPredicate]) -> None:
    lowered = ctx.lowered
    precipitation = ctx.find_column(table=WEATHER_TABLE, name_contains=("precip", "rain"), category="numeric")
    if precipitation is not None:
        comparison = _PRECIPITATION_COMPARISON.search(lowered)
        without_negations = _NEGATED_RAIN.sub(" ", lowered)
        if comparison is not None:
            if comparison.group(1):
                operator, value = comparison.group(1), _as_number(comparison.group(2))
            else:
                operator, value = ">", _as_number(comparison.group(3))
            filters.append(FilterPredicate(precipitation.column_name, operator, value, precipitation.table_name))  # type: ignore[arg-type]
        elif mentions(without_negations, "rain", "rainy", "raining", "wet"):
            filters.append(FilterPredicate(precipitation.column_name, ">", 0, precipitation.table_name))
        elif _NEGATED_RAIN.search(lowered) or mentions(lowered, "dry"):
            filters.append(FilterPredicate(precipitation.column_name, "=", 0, precipitation.table_name))

    hot_match = _HOT_THRESHOLD.search(lowered)
    if hot_match or mentions(lowered, "hot"):
        high = ctx.find_column(table=WEATHER_TABLE, name_contains=("high", "max"), category="numeric")
        if high is not None:
            threshold = _as_number(hot_match.group(1)) if hot_match else DEFAULT_HOT_THRESHOLD_C
            filters.append(FilterPredicate(high.column_name, ">", threshold, high.table_name))

    cold_match = _COLD_THRESHOLD.search(lowered)
    if cold_match or mentions(lowered, "cold"):
        low = ctx.find_column(table=WEATHER_TABLE, name_contains=("low", "min"), category="numeric")
        if low is not None:
            threshold = _as_number(cold_match.group(1)) if cold_match else DEFAULT_COLD_THRESHOLD_C
            filters.append(FilterPredicate(low.column_name, "<", threshold, low.table_name))


def _apply_age(ctx: FilterContext, filters: list[FilterPredicate]) -> None:
    birth_year = ctx.find_column(table=FACT_TABLE, name_contains=("birth",), category="numeric")
    if birth_year is None:
        return
    for direction, years in _AGE_PATTERN.findall(ctx.lowered):
        cutoff = ctx.age_reference_year - int(years)
        # Younger riders were born after the cutoff year
        operator = ">" if direction == "under" else "<"
        filters.append(FilterPredicate(birth_year.column_name, operator, cutoff, birth_year.table_name))


def _apply_day_of_week(ctx: FilterContext, filters: list[FilterPredicate]) -> None:
    start_column = ctx.catalog.find(FACT_START_COLUMN, FACT_TABLE)
    if start_column is None:
        return
    if mentions(ctx.lowered, "weekend", "weekends"):
        filters.append(FilterPredicate(start_column.column_name, "WEEKEND", None, start_column.table_name))
    elif mentions(ctx.lowered, "weekday", "weekdays"):
        filters.append(FilterPredicate(start_column.column_name, "WEEKDAY", None, start_column.table_name))


def _apply_last_day(ctx: FilterContext, filters: list[FilterPredicate]) -> None:
    year_month = find_month_year(ctx.text)
    column = pick_date_column(ctx)
    if year_month is None or column is None:
        return
    year, month = year_month
    last_day = last_day_of_month(year, month)
    # Replace the whole-month bounds with the single last day
    filters[:] = [f for f in filters if not f.is_date_bound]
    filters.extend(_date_bounds(column, last_day, first_of_next_month(year, month)))
    logger.debug("filter_last_day_applied", day=last_day.isoformat())


def _grouping_tags(ctx: FilterContext) -> list[str]:
    tags = [_GROUPING_TAGS[m.group(1)] for m in _GROUPING_PATTERN.finditer(ctx.lowered)]
    if mentions(ctx.lowered, "per day", "daily", "each day"):
        tags.append("date")
    if not tags and is_ranking_query(ctx.lowered) and mentions(ctx.lowered, "arrival", "arrivals"):
        tags.append("end_station")
    return list(dict.fromkeys(tags))


def _apply_grouping(ctx: FilterContext, filters: list[FilterPredicate]) -> None:
    for tag in _grouping_tags(ctx):
        filters.append(FilterPredicate(tag, "DIMENSION"))


_FILTER_RULES: list[FilterRule] = [
    FilterRule("temporal", lambda ctx: ctx.date_range is not None, _apply_temporal),
    FilterRule("gender", lambda ctx: mentions(ctx.lowered, *FEMALE_WORDS, *MALE_WORDS), _apply_gender),
    FilterRule("location", lambda ctx: bool(_station_mentions(ctx)), _apply_location),
    FilterRule("weather", _mentions_weather, _apply_weather),
    FilterRule("age", lambda ctx: _AGE_PATTERN.search(ctx.lowered) is not None, _apply_age),
    FilterRule(
        "day_of_week",
        lambda ctx: mentions(ctx.lowered, "weekend", "weekends", "weekday", "weekdays"),
        _apply_day_of_week,
    ),
    FilterRule("last_day", lambda ctx: _LAST_DAY_PATTERN.search(ctx.lowered) is not None, _apply_last_day),
    FilterRule("grouping", lambda ctx: bool(_grouping_tags(ctx)), _apply_grouping),
]


def extract_filters(ctx: FilterContext) -> list[FilterPredicate]:
    """
    Run every filter rule in order and collect their predicates.

    Args:
        ctx: FilterContext for the question

    Returns:
        Predicates in emission order (DIMENSION carriers included)

    Example:
        "How many kilometres were ridden by women on rainy days in June 2025?"
        -> started_at >= 2025-06-01, started_at < 2025-07-01,
           rider_gender = 'female', precipitation_mm > 0
    """
    filters: list[FilterPredicate] = []
    fired: list[str] = []
    for rule in _FILTER_RULES:
        if rule.applies(ctx):
            before = len(filters)
            rule.apply(ctx, filters)
            if len(filters) != before or rule.name == "last_day":
                fired.append(rule.name)

    logger.debug(
        "filters_extracted",
        rules=fired,
        filters=[(f.column, f.operator) for f in filters],
    )
    return filters
