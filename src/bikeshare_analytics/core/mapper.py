"""
Semantic column mapper.

Scores every cataloged column against the question with purely structural,
additive rules (name similarity, owning-table domain words, declared type,
sampled values) and derives table scores as the max of their columns. There is
no English-to-column dictionary; the only schema knowledge is which words are
characteristic of each table.
"""

from dataclasses import dataclass, replace

import structlog

from bikeshare_analytics.core.errors import NoRelevantTablesError
from bikeshare_analytics.core.intent_slots import IntentSlots
from bikeshare_analytics.core.nl_query_config import (
    BIKE_TABLE,
    CARDINALITY_SCORE,
    CARDINALITY_THRESHOLD,
    COLUMN_BOOST,
    COLUMN_SCORE_FLOOR,
    EXACT_MATCH_SCORE,
    FACT_TABLE,
    MAX_COLUMNS,
    MAX_TABLES,
    MIN_TABLE_SCORE,
    MIN_WORD_LENGTH,
    PARTIAL_CONTAINED_SCORE,
    PARTIAL_CONTAINS_SCORE,
    STATION_TABLE,
    SUB_TOKEN_SCORE,
    TABLE_BOOST,
    TEXT_VOCABULARY_SCORE,
    TYPE_MATCH_SCORE,
    VALUE_OVERLAP_SCORE,
    WEATHER_TABLE,
)
from bikeshare_analytics.core.query_cues import DISTANCE_WORDS, GENDER_WORDS, mentions, tokenize
from bikeshare_analytics.core.schema_catalog import ColumnDescriptor, SchemaCatalog, TypeCategory, categorize_type

logger = structlog.get_logger()

# Type-compatibility vocabulary
_TEMPORAL_WORDS = (
    "date",
    "time",
    "when",
    "month",
    "week",
    "day",
    "days",
    "daily",
    "year",
    "started",
    "ended",
    "ride",
    "journey",
    "first",
    "last",
    "weekend",
    "weekday",
    *(
        "january february march april may june july august september october november december".split()
    ),
)
_QUANTITY_WORDS = (
    "number",
    "amount",
    "count",
    "total",
    "sum",
    "average",
    "avg",
    "how many",
    "most",
    "departures",
    "kilometres",
    "kilometers",
    "kilometre",
    "kilometer",
    "km",
    "distance",
    "capacity",
    "temperature",
    "under",
    "over",
)
_DESCRIPTIVE_WORDS = (
    "name",
    "text",
    "description",
    "label",
    "avenue",
    "congress",
    "station",
    "location",
    "place",
    "point",
    "docking",
    "model",
)
_TEXT_GENDER_WORDS = GENDER_WORDS + ("rider", "riders")
_TEXT_WEATHER_WORDS = ("weather", "rain", "rainy", "precipitation", "temperature", "temp", "condition")

# Owning-table domain words: table -> [(words, bonus)]
_DOMAIN_BONUSES: dict[str, list[tuple[tuple[str, ...], int]]] = {
    FACT_TABLE: [
        (("trip", "trips", "ride", "rides", "ridden", "journey", "journeys", "started", "ended", "departure",
          "departures", "arrival", "arrivals"), 30),
        (("time", "duration", "how long", "average"), 25),
        (DISTANCE_WORDS, 35),
        (("women", "woman", "female", "females", "gender"), 25),
    ],
    STATION_TABLE: [
        (("station", "stations", "congress", "avenue", "location", "place", "start", "end", "point", "docking"), 30),
        (("name", "title", "most", "departures"), 25),
    ],
    WEATHER_TABLE: [
        (("weather", "rain", "rainy", "wet", "precipitation", "condition"), 30),
        (("temperature", "temp", "hot", "cold"), 25),
    ],
    BIKE_TABLE: [
        (("bike", "bikes", "bicycle", "bicycles", "vehicle"), 30),
    ],
}


@dataclass(frozen=True)
class ColumnMapping:
    """Relevance of one column for one question."""

    table_name: str
    column_name: str
    data_type: str
    score: int

    @property
    def type_category(self) -> TypeCategory:
        return categorize_type(self.data_type)

    @property
    def is_temporal(self) -> bool:
        return self.type_category == "temporal"


@dataclass(frozen=True)
class TableMapping:
    """Relevance of one table: the max of its column scores (plus slot boost)."""

    table_name: str
    score: int


@dataclass(frozen=True)
class MappingResult:
    """Ranked relevance lists for one question."""

    tables: list[TableMapping]
    columns: list[ColumnMapping]

    @property
    def table_names(self) -> list[str]:
        return [t.table_name for t in self.tables]

    @property
    def column_names(self) -> list[str]:
        return [c.column_name for c in self.columns]


class SemanticMapper:
    """Deterministic question-to-schema relevance scoring."""

    def __init__(self, catalog: SchemaCatalog):
        self.catalog = catalog

    def score_column(self, question: str, column: ColumnDescriptor) -> int:
        """
        Additive relevance score of a column for a question.

        Args:
            question: Raw question text
            column: Cataloged column

        Returns:
            Signed, unbounded integer score
        """
        lowered = question.lower()
        words = tokenize(lowered)
        name = column.column_name.lower()
        sub_tokens = [t for t in name.split("_") if len(t) >= MIN_WORD_LENGTH]
        score = 0

        # Name similarity
        if name in words:
            score += EXACT_MATCH_SCORE
        for word in words:
            if len(word) < MIN_WORD_LENGTH:
                continue
            if word in name:
                score += PARTIAL_CONTAINS_SCORE
            if name in word:
                score += PARTIAL_CONTAINED_SCORE
            if any(word in token or token in word for token in sub_tokens):
                score += SUB_TOKEN_SCORE

        # Owning-table domain words
        for vocabulary, bonus in _DOMAIN_BONUSES.get(column.table_name, []):
            if mentions(lowered, *vocabulary):
                score += bonus

        # Declared-type compatibility
        category = column.type_category
        if category == "temporal" and mentions(lowered, *_TEMPORAL_WORDS):
            score += TYPE_MATCH_SCORE
        elif category == "numeric" and mentions(lowered, *_QUANTITY_WORDS):
            score += TYPE_MATCH_SCORE
        elif category == "text":
            if mentions(lowered, *_DESCRIPTIVE_WORDS):
                score += TYPE_MATCH_SCORE
            if mentions(lowered, *_TEXT_GENDER_WORDS):
                score += TEXT_VOCABULARY_SCORE
            if mentions(lowered, *_TEXT_WEATHER_WORDS):
                score += TEXT_VOCABULARY_SCORE

        # Sampled-value overlap
        values = [v.lower() for v in column.sampled_values if len(v) >= MIN_WORD_LENGTH]
        long_words = [w for w in words if len(w) >= MIN_WORD_LENGTH]
        if any(word in value or value in word for word in long_words for value in values):
            score += VALUE_OVERLAP_SCORE

        # Cardinality only rewards columns that are already relevant
        if score > 0 and len(column.sampled_values) > CARDINALITY_THRESHOLD:
            score += CARDINALITY_SCORE

        return score

    def map(self, question: str, slots: IntentSlots | None = None) -> MappingResult:
        """
        Rank tables and columns for a question.

        Args:
            question: Raw question text
            slots: Advisory slots; named tables/columns receive a flat boost

        Returns:
            MappingResult with at most MAX_TABLES tables and MAX_COLUMNS columns

        Raises:
            NoRelevantTablesError: If no table reaches MIN_TABLE_SCORE
        """
        columns = [
            ColumnMapping(
                table_name=c.table_name,
                column_name=c.column_name,
                data_type=c.data_type,
                score=self.score_column(question, c),
            )
            for c in self.catalog.columns
        ]
        columns = [c for c in columns if c.score >= COLUMN_SCORE_FLOOR]

        # Relevance is decided on structural scores alone; slots only reorder survivors
        structural: dict[str, int] = {}
        for column in columns:
            structural[column.table_name] = max(structural.get(column.table_name, column.score), column.score)
        candidates = {name for name, score in structural.items() if score >= MIN_TABLE_SCORE}

        if not candidates:
            logger.warning("mapper_no_relevant_tables", question=question, scored_tables=len(structural))
            raise NoRelevantTablesError(question)

        named_tables: set[str] = set()
        if slots is not None:
            named_tables = set(slots.tables)
            named_columns = set(slots.columns)
            columns = [
                replace(c, score=c.score + COLUMN_BOOST) if c.column_name in named_columns else c for c in columns
            ]

        # Table score = best column score, in declaration order for stable ties
        best: dict[str, int] = {}
        for column in columns:
            if column.table_name in candidates:
                best[column.table_name] = max(best.get(column.table_name, column.score), column.score)
        tables = [
            TableMapping(table_name=name, score=score + (TABLE_BOOST if name in named_tables else 0))
            for name, score in best.items()
        ]

        tables.sort(key=lambda t: t.score, reverse=True)
        relevant = tables[:MAX_TABLES]

        kept = {t.table_name for t in relevant}
        ranked_columns = sorted((c for c in columns if c.table_name in kept), key=lambda c: c.score, reverse=True)

        result = MappingResult(tables=relevant, columns=ranked_columns[:MAX_COLUMNS])
        logger.debug(
            "mapper_result",
            tables=[(t.table_name, t.score) for t in result.tables],
            top_columns=[(c.table_name, c.column_name, c.score) for c in result.columns[:5]],
        )
        return result
