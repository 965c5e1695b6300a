"""
Query plan assembly.

Turns the mapper output, filter predicates and aggregation requests into one
parameterized SQL statement ($1..$n placeholders in emission order).

Every identifier in the emitted text comes from the schema catalog: join paths
are fixed, but each path's columns are verified against the catalog before
the join is added. A predicate whose table was never joined renders as the
always-false `1=0` instead of a wrongly qualified reference.
"""

from dataclasses import dataclass, field
from datetime import date

import structlog

from bikeshare_analytics.core.date_resolver import resolve_date_phrase
from bikeshare_analytics.core.errors import PlanInvariantError
from bikeshare_analytics.core.intent_slots import IntentSlots
from bikeshare_analytics.core.mapper import MappingResult
from bikeshare_analytics.core.nl_query_config import (
    BIKE_STATION_COLUMN,
    BIKE_TABLE,
    END_STATION_ROLE,
    FACT_END_COLUMN,
    FACT_END_STATION_COLUMN,
    FACT_START_COLUMN,
    FACT_START_STATION_COLUMN,
    FACT_TABLE,
    MAX_LISTED_COLUMNS,
    STATION_KEY_COLUMN,
    STATION_NAME_COLUMN,
    STATION_TABLE,
    TABLE_ALIASES,
    WEATHER_DATE_COLUMN,
    WEATHER_TABLE,
)
from bikeshare_analytics.core.query_cues import (
    STATION_WORDS,
    is_bike_inventory_query,
    is_bike_location_query,
    is_ranking_query,
    is_trip_query,
    is_weather_query,
    mentions,
    top_n,
)
from bikeshare_analytics.core.query_plan import AggregationRequest, FilterPredicate, FilterValue, QueryPlan
from bikeshare_analytics.core.schema_catalog import SchemaCatalog

logger = structlog.get_logger()


# ============================================================================
# Join paths
# ============================================================================


@dataclass(frozen=True)
class JoinPath:
    """One supported relationship between the primary table and a dimension."""

    role: str  # Alias lookup key (table name, or END_STATION_ROLE)
    table: str  # Joined table
    from_table: str  # Left-hand (primary) table
    from_column: str
    to_column: str
    date_cast: bool = False  # Compare DATE(left) with the right-hand date column


STATION_JOIN = JoinPath(STATION_TABLE, STATION_TABLE, FACT_TABLE, FACT_START_STATION_COLUMN, STATION_KEY_COLUMN)
END_STATION_JOIN = JoinPath(END_STATION_ROLE, STATION_TABLE, FACT_TABLE, FACT_END_STATION_COLUMN, STATION_KEY_COLUMN)
WEATHER_JOIN = JoinPath(WEATHER_TABLE, WEATHER_TABLE, FACT_TABLE, FACT_START_COLUMN, WEATHER_DATE_COLUMN, date_cast=True)
BIKE_STATION_JOIN = JoinPath(STATION_TABLE, STATION_TABLE, BIKE_TABLE, BIKE_STATION_COLUMN, STATION_KEY_COLUMN)


def alias_for_table(role: str) -> str:
    return TABLE_ALIASES.get(role, role[:1])


@dataclass
class JoinSet:
    """FROM/JOIN entries established for one plan."""

    primary_table: str
    aliases: dict[str, str] = field(default_factory=dict)  # role -> alias
    clauses: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.aliases[self.primary_table] = alias_for_table(self.primary_table)

    @property
    def primary_alias(self) -> str:
        return self.aliases[self.primary_table]

    def alias_for(self, role: str | None) -> str | None:
        if role is None:
            return None
        return self.aliases.get(role)

    def tables_by_alias(self) -> dict[str, str]:
        result = {}
        for role, alias in self.aliases.items():
            result[alias] = STATION_TABLE if role == END_STATION_ROLE else role
        return result

    def add(self, path: JoinPath, catalog: SchemaCatalog) -> bool:
        """Add a join once; returns False when the path's columns are not in the catalog."""
        if path.role in self.aliases:
            return True
        left_alias = self.aliases.get(path.from_table)
        if left_alias is None:
            return False
        if catalog.find(path.from_column, path.from_table) is None or catalog.find(path.to_column, path.table) is None:
            logger.warning("join_path_unavailable", role=path.role, table=path.table)
            return False

        alias = alias_for_table(path.role)
        left = f"{left_alias}.{path.from_column}"
        if path.date_cast:
            left = f"DATE({left})"
        self.clauses.append(f"JOIN {path.table} {alias} ON {left} = {alias}.{path.to_column}")
        self.aliases[path.role] = alias
        return True


# ============================================================================
# Primary table selection
# ============================================================================


def choose_primary_table(question: str, mapping: MappingResult, catalog: SchemaCatalog | None = None) -> str:
    """
    Pick the base table for the FROM clause.

    Default is the fact table. The owner of the best-scoring temporal column
    becomes the candidate, but the fact table wins whenever it is relevant.
    Trip vocabulary forces the fact table; bike-inventory vocabulary forces bikes.
    """
    lowered = question.lower()
    if is_bike_inventory_query(lowered):
        primary = BIKE_TABLE
    elif is_trip_query(lowered):
        primary = FACT_TABLE
    else:
        primary = FACT_TABLE
        temporal = [c for c in mapping.columns if c.is_temporal]
        if temporal:
            primary = temporal[0].table_name
        if FACT_TABLE in mapping.table_names:
            primary = FACT_TABLE

    if catalog is not None and not catalog.has_table(primary) and mapping.tables:
        logger.warning("primary_table_missing", table=primary, fallback=mapping.tables[0].table_name)
        primary = mapping.tables[0].table_name
    return primary


# ============================================================================
# Assembler
# ============================================================================


class QueryPlanAssembler:
    """State-free, single-pass SQL assembly."""

    def __init__(self, catalog: SchemaCatalog):
        self.catalog = catalog

    def assemble(
        self,
        question: str,
        mapping: MappingResult,
        filters: list[FilterPredicate],
        aggregations: list[AggregationRequest],
        primary_table: str,
        slots: IntentSlots | None = None,
        today: date | None = None,
    ) -> QueryPlan:
        """
        Build the SQL text and bound parameters for a question.

        Args:
            question: Raw question text
            mapping: Ranked tables/columns from the semantic mapper
            filters: Predicates from the filter assembler (DIMENSION carriers included)
            aggregations: Requests from the aggregation assembler
            primary_table: Base table (see choose_primary_table)
            slots: Advisory slots (only the weather flag is consulted)
            today: Reference date for relative phrases in the invariant check

        Returns:
            Immutable QueryPlan

        Raises:
            PlanInvariantError: Ranking question with a date phrase but no date predicate
        """
        lowered = question.lower()
        ranking = is_ranking_query(lowered)
        dimensions = list(dict.fromkeys(f.column for f in filters if f.is_dimension))
        where_filters = [f for f in filters if not f.is_dimension]

        joins = self._plan_joins(lowered, primary_table, where_filters, dimensions, slots)

        group_exprs = self._group_expressions(lowered, ranking, dimensions, aggregations, mapping, joins)
        if group_exprs and not aggregations:
            # A breakdown without a measure still needs an aggregate per group
            aggregations = [AggregationRequest("COUNT", "*", "ride_count")]

        select_items = [label for _, label in group_exprs]
        order_alias: str | None = None
        if aggregations:
            select_items.extend(self._select_aggregations(aggregations, ranking, mapping, joins))
            order_alias = aggregations[0].alias
        else:
            select_items.extend(self._select_columns(mapping, joins))

        conditions, parameters, has_date_bound = self._where(where_filters, joins)

        if ranking and not has_date_bound and resolve_date_phrase(question, today) is not None:
            logger.error("plan_invariant_ranking_without_date", question=question)
            raise PlanInvariantError("Ranking question names a date range but the plan has no date filter")

        parts = [f"SELECT {', '.join(select_items)}", f"FROM {primary_table} {joins.primary_alias}"]
        parts.extend(joins.clauses)
        if conditions:
            parts.append("WHERE " + " AND ".join(conditions))
        if group_exprs and aggregations:
            parts.append("GROUP BY " + ", ".join(expr for expr, _ in group_exprs))
        if ranking and order_alias:
            parts.append(f"ORDER BY {order_alias} DESC")
            parts.append(f"LIMIT {top_n(lowered) or 1}")

        query_text = " ".join(parts)
        tables_by_alias = joins.tables_by_alias()
        plan = QueryPlan(
            query_text=query_text,
            parameters=tuple(parameters),
            primary_table=primary_table,
            tables=list(dict.fromkeys(tables_by_alias.values())),
            columns=mapping.column_names,
            filters=list(filters),
            aggregations=list(aggregations),
            joins=tables_by_alias,
        )
        logger.info(
            "query_plan_assembled",
            primary_table=primary_table,
            joins=list(tables_by_alias),
            ranking=ranking,
            parameter_count=len(parameters),
        )
        return plan

    # ------------------------------------------------------------------
    # Joins
    # ------------------------------------------------------------------

    def _plan_joins(
        self,
        lowered: str,
        primary_table: str,
        where_filters: list[FilterPredicate],
        dimensions: list[str],
        slots: IntentSlots | None,
    ) -> JoinSet:
        joins = JoinSet(primary_table)
        filter_tables = {f.table for f in where_filters}

        if primary_table == FACT_TABLE:
            if (
                STATION_TABLE in filter_tables
                or is_ranking_query(lowered)
                or mentions(lowered, *STATION_WORDS)
                or "station" in dimensions
            ):
                joins.add(STATION_JOIN, self.catalog)
            if END_STATION_ROLE in filter_tables or "end_station" in dimensions:
                joins.add(END_STATION_JOIN, self.catalog)
            if (
                WEATHER_TABLE in filter_tables
                or is_weather_query(lowered)
                or (slots is not None and slots.needs_weather)
            ):
                joins.add(WEATHER_JOIN, self.catalog)

        elif primary_table == BIKE_TABLE:
            if is_bike_location_query(lowered) or STATION_TABLE in filter_tables or "station" in dimensions:
                joins.add(BIKE_STATION_JOIN, self.catalog)

        return joins

    # ------------------------------------------------------------------
    # GROUP BY
    # ------------------------------------------------------------------

    def _column_ref(self, joins: JoinSet, role: str, column_name: str | None) -> str | None:
        """`alias.column` if the role is joined and the column exists on its table."""
        alias = joins.alias_for(role)
        table = STATION_TABLE if role == END_STATION_ROLE else role
        if alias is None or column_name is None or self.catalog.find(column_name, table) is None:
            return None
        return f"{alias}.{column_name}"

    def _first_column(self, table: str, *parts: str, category: str | None = None) -> str | None:
        for column in self.catalog.columns_for(table):
            if parts and not any(p in column.column_name for p in parts):
                continue
            if category is not None and column.type_category != category:
                continue
            return column.column_name
        return None

    def _dimension_expression(self, tag: str, joins: JoinSet) -> tuple[str, str] | None:
        """(GROUP BY expression, SELECT label) for a grouping tag."""
        primary = joins.primary_table
        ref: str | None = None

        if tag == "station":
            ref = self._column_ref(joins, STATION_TABLE, STATION_NAME_COLUMN)
        elif tag == "end_station":
            ref = self._column_ref(joins, END_STATION_ROLE, STATION_NAME_COLUMN)
            if ref is not None:
                return ref, f"{ref} AS end_station_name"
        elif tag == "date":
            date_column = FACT_START_COLUMN if primary == FACT_TABLE else self._first_column(primary, category="temporal")
            ref = self._column_ref(joins, primary, date_column)
            if ref is not None:
                return f"DATE({ref})", f"DATE({ref}) AS ride_date"
        elif tag == "gender":
            ref = self._column_ref(joins, FACT_TABLE, self._first_column(FACT_TABLE, "gender"))
        elif tag == "bike":
            if primary == BIKE_TABLE:
                ref = self._column_ref(joins, BIKE_TABLE, self._first_column(BIKE_TABLE, "model"))
            else:
                ref = self._column_ref(joins, FACT_TABLE, self._first_column(FACT_TABLE, "bike"))
        elif tag == "distance":
            ref = self._column_ref(joins, FACT_TABLE, self._first_column(FACT_TABLE, "distance", "km"))

        if ref is None:
            logger.warning("group_dimension_unresolved", dimension=tag, primary_table=primary)
            return None
        return ref, ref

    def _group_expressions(
        self,
        lowered: str,
        ranking: bool,
        dimensions: list[str],
        aggregations: list[AggregationRequest],
        mapping: MappingResult,
        joins: JoinSet,
    ) -> list[tuple[str, str]]:
        if dimensions:
            resolved = [self._dimension_expression(tag, joins) for tag in dimensions]
            return [expr for expr in resolved if expr is not None]

        counts_rows = any(a.function == "COUNT" and a.column == "*" for a in aggregations)
        if not (ranking and counts_rows):
            return []

        station_ref = self._column_ref(joins, STATION_TABLE, STATION_NAME_COLUMN)
        if station_ref is not None and mentions(lowered, *STATION_WORDS):
            return [(station_ref, station_ref)]

        for column in mapping.columns:
            if column.table_name == joins.primary_table:
                ref = f"{joins.primary_alias}.{column.column_name}"
                return [(ref, ref)]
        return []

    # ------------------------------------------------------------------
    # SELECT
    # ------------------------------------------------------------------

    def _fact_duration_refs(self, joins: JoinSet) -> tuple[str, str] | None:
        start = self._column_ref(joins, FACT_TABLE, FACT_START_COLUMN)
        end = self._column_ref(joins, FACT_TABLE, FACT_END_COLUMN)
        if start is None or end is None:
            return None
        return start, end

    def _render_aggregation(self, aggregation: AggregationRequest, joins: JoinSet) -> str:
        function = aggregation.function
        alias = aggregation.alias
        fallback = f"COUNT(*) AS {alias}"

        if function == "COUNT" and aggregation.column == "*":
            return fallback

        if function in ("DURATION", "SPEED"):
            refs = self._fact_duration_refs(joins)
            if refs is None:
                logger.warning("aggregation_duration_unavailable", function=function)
                return fallback
            start, end = refs
            seconds = f"EXTRACT(EPOCH FROM ({end} - {start}))"
            if function == "DURATION":
                return f"ROUND(AVG({seconds} / 60)::numeric, 0) AS {alias}"

            distance = self._column_ref(joins, aggregation.table or FACT_TABLE, aggregation.column)
            if distance is None:
                logger.warning("aggregation_speed_unavailable", column=aggregation.column)
                return fallback
            total = f"SUM({distance})"
            if aggregation.unit_scale is not None:
                total = f"{total} * {aggregation.unit_scale}"
            return f"ROUND(({total} / NULLIF(SUM({seconds}) / 3600.0, 0))::numeric, 2) AS {alias}"

        role = aggregation.table or self.catalog.owner_of(aggregation.column)
        ref = self._column_ref(joins, role, aggregation.column) if role else None
        if ref is None:
            logger.warning("aggregation_unqualified", column=aggregation.column, table=role)
            return fallback

        if function in ("SUM", "AVG"):
            value = f"{function}({ref})"
            if aggregation.unit_scale is not None:
                value = f"({value} * {aggregation.unit_scale})"
            precision = 1 if function == "SUM" else 2
            return f"ROUND({value}::numeric, {precision}) AS {alias}"
        return f"{function}({ref}) AS {alias}"

    def _select_aggregations(
        self,
        aggregations: list[AggregationRequest],
        ranking: bool,
        mapping: MappingResult,
        joins: JoinSet,
    ) -> list[str]:
        primary = aggregations[0]
        if primary.function in ("DURATION", "SPEED"):
            return [self._render_aggregation(primary, joins)]
        if ranking:
            return [self._render_aggregation(a, joins) for a in aggregations]

        # Scalar: only the highest-priority aggregate, and only over a mapped column
        if primary.column != "*" and primary.column not in mapping.column_names:
            logger.warning("aggregation_source_unmapped", column=primary.column, alias=primary.alias)
            return [f"COUNT(*) AS {primary.alias}"]
        return [self._render_aggregation(primary, joins)]

    def _select_columns(self, mapping: MappingResult, joins: JoinSet) -> list[str]:
        primary = joins.primary_table
        listed = [c.column_name for c in mapping.columns if c.table_name == primary][:MAX_LISTED_COLUMNS]
        items = [f"{joins.primary_alias}.{name}" for name in listed] or [f"{joins.primary_alias}.*"]

        if primary == BIKE_TABLE:
            station_ref = self._column_ref(joins, STATION_TABLE, STATION_NAME_COLUMN)
            if station_ref is not None:
                items.append(station_ref)
        return items

    # ------------------------------------------------------------------
    # WHERE
    # ------------------------------------------------------------------

    def _where(
        self, where_filters: list[FilterPredicate], joins: JoinSet
    ) -> tuple[list[str], list[FilterValue], bool]:
        conditions: list[str] = []
        parameters: list[FilterValue] = []
        has_date_bound = False

        def bind(value: FilterValue) -> str:
            parameters.append(value)
            return f"${len(parameters)}"

        for predicate in where_filters:
            role = predicate.table or self.catalog.owner_of(predicate.column)
            ref = self._column_ref(joins, role, predicate.column) if role else None
            if ref is None:
                logger.warning(
                    "filter_unqualified",
                    column=predicate.column,
                    table=role,
                    operator=predicate.operator,
                )
                conditions.append("1=0")
                continue

            operator = predicate.operator
            if operator == "WEEKEND":
                conditions.append(f"EXTRACT(DOW FROM {ref}) IN (0, 6)")
            elif operator == "WEEKDAY":
                conditions.append(f"EXTRACT(DOW FROM {ref}) BETWEEN 1 AND 5")
            elif operator == "IN":
                values = predicate.value if isinstance(predicate.value, list) else []
                if not values:
                    conditions.append("1=0")
                    continue
                placeholders = ", ".join(bind(v) for v in values)
                conditions.append(f"{ref} IN ({placeholders})")
            else:
                conditions.append(f"{ref} {operator} {bind(predicate.value)}")
                has_date_bound = has_date_bound or predicate.is_date_bound

        return conditions, parameters, has_date_bound
