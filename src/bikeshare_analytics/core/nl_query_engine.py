"""
Natural language to SQL translation for bike-share questions.

Pipeline (one synchronous call per question):
    1. Input guard (validate_question)
    2. Concurrently: schema catalog warm-up + advisory slot extraction
    3. Semantic column mapping (structural scoring, slot boosts)
    4. Primary table selection
    5. Filter assembly (ordered rule table)
    6. Aggregation assembly (first-match cascade)
    7. Plan assembly (joins, SELECT, WHERE, GROUP/ORDER/LIMIT)

Example:
    >>> from bikeshare_analytics.core.nl_query_engine import QueryTranslator
    >>> translator = QueryTranslator(catalog)
    >>> plan = translator.translate("How many kilometres did women ride on rainy days in June 2025?")
    >>> plan.query_text
    'SELECT ROUND(SUM(t.trip_distance_km)::numeric, 1) AS total_kilometres FROM trips t ...'
"""

import re
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import date

import structlog

from bikeshare_analytics.core.aggregation import AggregationContext, extract_aggregations
from bikeshare_analytics.core.errors import InvalidQuestionError
from bikeshare_analytics.core.filter_extraction import FilterContext, extract_filters
from bikeshare_analytics.core.intent_slots import IntentSlots, SlotExtractor, heuristic_slots
from bikeshare_analytics.core.mapper import SemanticMapper
from bikeshare_analytics.core.nl_query_config import (
    AGE_REFERENCE_YEAR,
    MAX_QUESTION_LENGTH,
    SCHEMA_REFRESH_TIMEOUT_SECONDS,
    SLOT_EXTRACTION_TIMEOUT_SECONDS,
)
from bikeshare_analytics.core.query_plan import QueryPlan
from bikeshare_analytics.core.schema_catalog import SchemaCatalog
from bikeshare_analytics.core.sql_builder import QueryPlanAssembler, choose_primary_table

logger = structlog.get_logger()

# SQL fragments that never belong in a question
_UNSAFE_PATTERNS = [
    re.compile(r"\bdrop\s+table\b", re.IGNORECASE),
    re.compile(r"\bdelete\s+from\b", re.IGNORECASE),
    re.compile(r"\bupdate\b.+\bset\b", re.IGNORECASE),
    re.compile(r"\binsert\s+into\b", re.IGNORECASE),
    re.compile(r"\bcreate\s+table\b", re.IGNORECASE),
    re.compile(r"\balter\s+table\b", re.IGNORECASE),
    re.compile(r"--"),
    re.compile(r"/\*"),
    re.compile(r";\s*$"),
    re.compile(r"\bunion\s+select\b", re.IGNORECASE),
    re.compile(r"\bor\s+1\s*=\s*1\b", re.IGNORECASE),
    re.compile(r"\bor\s+true\b", re.IGNORECASE),
]


def validate_question(question: str | None) -> str:
    """
    Reject empty, oversized or SQL-bearing questions.

    Args:
        question: Raw question text

    Returns:
        The stripped question

    Raises:
        InvalidQuestionError: If the question fails any check
    """
    text = (question or "").strip()
    if not text:
        raise InvalidQuestionError("Question must not be empty")
    if len(text) > MAX_QUESTION_LENGTH:
        raise InvalidQuestionError(f"Question is too long (max {MAX_QUESTION_LENGTH} characters)")
    for pattern in _UNSAFE_PATTERNS:
        if pattern.search(text):
            logger.warning("question_rejected_unsafe", pattern=pattern.pattern)
            raise InvalidQuestionError("Question contains disallowed SQL syntax")
    return text


class QueryTranslator:
    """
    Translate one natural-language question into one parameterized QueryPlan.

    The translator never executes SQL. Collaborators are injectable so tests
    can run against an in-memory catalog with LLM slot extraction disabled.
    """

    def __init__(
        self,
        catalog: SchemaCatalog,
        slot_extractor: SlotExtractor | None = None,
        mapper: SemanticMapper | None = None,
        assembler: QueryPlanAssembler | None = None,
        today_provider: Callable[[], date] = date.today,
        slot_timeout_s: float = SLOT_EXTRACTION_TIMEOUT_SECONDS,
        refresh_timeout_s: float = SCHEMA_REFRESH_TIMEOUT_SECONDS,
        reference_year: int | None = AGE_REFERENCE_YEAR,
    ):
        self.catalog = catalog
        self.slot_extractor = slot_extractor or SlotExtractor()
        self.mapper = mapper or SemanticMapper(catalog)
        self.assembler = assembler or QueryPlanAssembler(catalog)
        self.today_provider = today_provider
        self.slot_timeout_s = slot_timeout_s
        self.refresh_timeout_s = refresh_timeout_s
        self.reference_year = reference_year

    def _schema_summary(self) -> str:
        if self.catalog.is_empty:
            return "tables: trips, stations, bikes, daily_weather"
        return self.catalog.summary()

    def _warm_up_and_extract(self, question: str) -> IntentSlots:
        """Run catalog warm-up and slot extraction concurrently, each bounded by a timeout."""
        executor = ThreadPoolExecutor(max_workers=2)
        try:
            refresh_future = executor.submit(self.catalog.refresh_if_empty)
            slots_future = executor.submit(self.slot_extractor.extract, question, self._schema_summary())

            try:
                refresh_future.result(timeout=self.refresh_timeout_s)
            except FutureTimeoutError:
                logger.warning("schema_catalog_refresh_failed", reason="timeout", timeout_s=self.refresh_timeout_s)
            except Exception as e:
                # Translation proceeds with whatever the catalog already holds
                logger.warning("schema_catalog_refresh_failed", error=str(e), error_type=type(e).__name__)

            try:
                return slots_future.result(timeout=self.slot_timeout_s)
            except FutureTimeoutError:
                logger.warning("slot_extraction_fallback", reason="timeout", timeout_s=self.slot_timeout_s)
            except Exception as e:
                logger.warning("slot_extraction_fallback", reason="error", error=str(e))
            return heuristic_slots(question)
        finally:
            # Slow calls must not hold the request open past their timeouts
            executor.shutdown(wait=False)

    def translate(self, question: str) -> QueryPlan:
        """
        Translate a question into a parameterized SQL plan.

        Args:
            question: Natural-language question

        Returns:
            QueryPlan with `$n` placeholders and positional parameters

        Raises:
            InvalidQuestionError: Question rejected by the input guard
            NoRelevantTablesError: No table is relevant to the question
            PlanInvariantError: Ranking plan lost its date filter
        """
        text = validate_question(question)
        today = self.today_provider()
        logger.info("translate_start", question=text)

        slots = self._warm_up_and_extract(text)
        slots = slots.restricted_to(set(self.catalog.tables()), self.catalog.column_names())

        mapping = self.mapper.map(text, slots)
        primary_table = choose_primary_table(text, mapping, self.catalog)

        filters = extract_filters(
            FilterContext(
                text=text,
                columns=mapping.columns,
                primary_table=primary_table,
                catalog=self.catalog,
                today=today,
                reference_year=self.reference_year,
            )
        )
        aggregations = extract_aggregations(
            AggregationContext(
                text=text,
                columns=mapping.columns,
                primary_table=primary_table,
                catalog=self.catalog,
            )
        )

        plan = self.assembler.assemble(
            question=text,
            mapping=mapping,
            filters=filters,
            aggregations=aggregations,
            primary_table=primary_table,
            slots=slots,
            today=today,
        )
        logger.info(
            "translate_success",
            primary_table=plan.primary_table,
            tables=plan.tables,
            slot_source=slots.source,
            parameter_count=len(plan.parameters),
        )
        return plan
