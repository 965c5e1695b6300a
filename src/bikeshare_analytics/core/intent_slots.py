"""
Intent slot extraction (advisory).

Produces a structured IntentSlots record for a question. When Groq credentials
are configured the LLM is asked for slots; on any failure (missing key, timeout,
malformed JSON, wrong shape) keyword heuristics take over. Slots only nudge
scoring and join decisions, so the final plan never depends on the LLM.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Any, Literal

import structlog

from bikeshare_analytics.core.date_resolver import MONTHS
from bikeshare_analytics.core.llm_client import GroqClient
from bikeshare_analytics.core.llm_feature import LLMFeature, call_llm
from bikeshare_analytics.core.llm_json import validate_shape
from bikeshare_analytics.core.nl_query_config import ENABLE_LLM_SLOT_EXTRACTION, KNOWN_LANDMARKS
from bikeshare_analytics.core.query_cues import (
    AVERAGE_WORDS,
    COUNT_WORDS,
    DISTANCE_WORDS,
    FEMALE_WORDS,
    MALE_WORDS,
    STATION_WORDS,
    WEATHER_WORDS,
    is_bike_inventory_query,
    is_duration_query,
    is_ranking_query,
    mentions,
    top_n,
)

logger = structlog.get_logger()

QueryType = Literal["scalar_aggregation", "ranking_by_group", "lookup", "unknown"]

QUERY_TYPES = ("scalar_aggregation", "ranking_by_group", "lookup", "unknown")
AGGREGATIONS = ("AVG", "SUM", "COUNT", "MIN", "MAX")

# Alternate spellings seen in model output
_QUERY_TYPE_ALIASES = {"group_topk": "ranking_by_group", "ranking": "ranking_by_group", "scalar": "scalar_aggregation"}
_FLAG_ALIASES = {
    "needs_station_name": "needs_station_name",
    "needs_weather": "needs_weather",
    "needs_weather_rain": "needs_weather",
    "needs_distance": "needs_distance",
    "needs_duration": "needs_duration",
}

_GROUP_BY_PATTERN = re.compile(
    r"\bby\s+(end station|start station|station|starts|trip distance|distance|day|date|gender|bike|model)s?\b"
)
_TIME_PHRASE_PATTERN = re.compile(
    r"\b(?:first\s+week\s+of\s+)?(?:" + "|".join(sorted(MONTHS, key=len, reverse=True)) + r")\s+\d{4}\b"
    r"|\blast\s+month\b|\b(?:in|during)\s+\d{4}\b"
)


@dataclass(frozen=True)
class IntentSlots:
    """Advisory structured reading of a question."""

    query_type: QueryType = "unknown"
    intent: str = ""
    time_phrase: str | None = None
    station_name: str | None = None
    gender_tokens: tuple[str, ...] = ()
    needs_station_name: bool = False
    needs_weather: bool = False
    needs_distance: bool = False
    needs_duration: bool = False
    aggregation: str | None = None  # One of AGGREGATIONS
    measure: str | None = None
    group_by: tuple[str, ...] = ()
    k: int | None = None
    order: Literal["asc", "desc"] | None = None
    tables: tuple[str, ...] = ()  # Schema tables named by the extractor
    columns: tuple[str, ...] = ()  # Schema columns named by the extractor
    source: Literal["llm", "heuristic"] = "heuristic"

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "IntentSlots":
        """
        Build slots from an LLM payload, validating each field independently.

        A bad field falls back to its default instead of discarding the record.
        """
        query_type = str(payload.get("query_type") or "unknown").strip().lower()
        query_type = _QUERY_TYPE_ALIASES.get(query_type, query_type)
        if query_type not in QUERY_TYPES:
            logger.debug("slot_field_invalid", field="query_type", value=query_type)
            query_type = "unknown"

        entities = payload.get("entities") if isinstance(payload.get("entities"), dict) else {}
        flags = payload.get("flags") if isinstance(payload.get("flags"), dict) else {}

        flag_values = {name: False for name in set(_FLAG_ALIASES.values())}
        for key, value in flags.items():
            target = _FLAG_ALIASES.get(key)
            if target and isinstance(value, bool):
                flag_values[target] = flag_values[target] or value

        aggregation = payload.get("aggregation")
        aggregation = aggregation.strip().upper() if isinstance(aggregation, str) else None
        if aggregation not in AGGREGATIONS:
            aggregation = None

        order = payload.get("order")
        order = order.strip().lower() if isinstance(order, str) else None
        if order not in ("asc", "desc"):
            order = None

        k = payload.get("k")
        if not isinstance(k, int) or isinstance(k, bool) or k < 1:
            k = None

        station_name = entities.get("station_name")
        return cls(
            query_type=query_type,  # type: ignore[arg-type]
            intent=_as_text(payload.get("intent")) or "",
            time_phrase=_as_text(payload.get("time_phrase")),
            station_name=station_name.strip() if isinstance(station_name, str) and station_name.strip() else None,
            gender_tokens=_as_strings(entities.get("gender_tokens")),
            aggregation=aggregation,
            measure=_as_text(payload.get("measure")),
            group_by=_as_strings(payload.get("group_by")),
            k=k,
            order=order,  # type: ignore[arg-type]
            tables=_as_strings(payload.get("tables")),
            columns=_as_strings(payload.get("columns")),
            source="llm",
            **flag_values,
        )

    def restricted_to(self, known_tables: set[str], known_columns: set[str]) -> "IntentSlots":
        """
        Drop every schema name the catalog does not know.

        measure / group_by entries that are real column names count as named columns.
        """
        named_columns = [c for c in (*self.columns, self.measure or "", *self.group_by) if c in known_columns]
        return replace(
            self,
            tables=tuple(dict.fromkeys(t for t in self.tables if t in known_tables)),
            columns=tuple(dict.fromkeys(named_columns)),
        )


def _as_text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _as_strings(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return ()
    return tuple(item.strip() for item in value if isinstance(item, str) and item.strip())


def heuristic_slots(question: str) -> IntentSlots:
    """
    Keyword-only slot estimate.

    Never names schema tables or columns; it only sets archetype, flags and
    entities that the rule cascades could derive themselves.
    """
    lowered = question.lower()
    ranking = is_ranking_query(lowered)

    if ranking:
        query_type: QueryType = "ranking_by_group"
    elif is_bike_inventory_query(lowered):
        query_type = "lookup"
    elif mentions(lowered, *AVERAGE_WORDS, *COUNT_WORDS, "total", "sum", *DISTANCE_WORDS):
        query_type = "scalar_aggregation"
    else:
        query_type = "unknown"

    aggregation = None
    if mentions(lowered, *AVERAGE_WORDS):
        aggregation = "AVG"
    elif mentions(lowered, *DISTANCE_WORDS, "total", "sum"):
        aggregation = "SUM"
    elif ranking or mentions(lowered, *COUNT_WORDS):
        aggregation = "COUNT"

    station_name = next((name for key, name in KNOWN_LANDMARKS.items() if mentions(lowered, key)), None)
    gender_tokens = tuple(word for word in FEMALE_WORDS + MALE_WORDS if mentions(lowered, word))

    time_match = _TIME_PHRASE_PATTERN.search(lowered)
    group_by = tuple(dict.fromkeys(m.group(1) for m in _GROUP_BY_PATTERN.finditer(lowered)))

    return IntentSlots(
        query_type=query_type,
        intent=" ".join(lowered.split())[:120],
        time_phrase=time_match.group(0) if time_match else None,
        station_name=station_name,
        gender_tokens=gender_tokens,
        needs_station_name=station_name is not None or mentions(lowered, *STATION_WORDS),
        needs_weather=mentions(lowered, *WEATHER_WORDS),
        needs_distance=mentions(lowered, *DISTANCE_WORDS),
        needs_duration=is_duration_query(lowered),
        aggregation=aggregation,
        group_by=group_by,
        k=(top_n(lowered) or 1) if ranking else None,
        order="desc" if ranking else None,
        source="heuristic",
    )


SLOT_SYSTEM_PROMPT = """You extract structured slots from questions about a bike-share database.
You receive the question and the database schema (tables and columns). Never write SQL.

Return ONLY one JSON object with these fields:
{
  "query_type": "scalar_aggregation" | "ranking_by_group" | "lookup" | "unknown",
  "intent": short description,
  "time_phrase": the temporal phrase copied from the question, or null,
  "entities": {"station_name": string or null, "gender_tokens": list of strings or null},
  "flags": {"needs_station_name": bool, "needs_weather": bool, "needs_distance": bool, "needs_duration": bool},
  "aggregation": "AVG" | "SUM" | "COUNT" | "MIN" | "MAX" | null,
  "measure": column name or short measure name, or null,
  "group_by": list of grouping dimensions or null,
  "k": integer row count for rankings or null,
  "order": "asc" | "desc" | null,
  "tables": list of schema table names the question needs,
  "columns": list of schema column names the question needs
}

For "which station most/least ..." questions use query_type "ranking_by_group",
group_by ["station"], k 1 and order "desc".

Examples (slots only):
Q: "What was the average ride time for journeys that started at Congress Avenue in June 2025?"
{"query_type":"scalar_aggregation","intent":"average ride time from station in month","time_phrase":"June 2025",\
"entities":{"station_name":"Congress Avenue","gender_tokens":null},"flags":{"needs_station_name":true,\
"needs_weather":false,"needs_distance":false,"needs_duration":true},"aggregation":"AVG","measure":"ride_duration",\
"group_by":null,"k":null,"order":null,"tables":["trips","stations"],"columns":["started_at","ended_at","station_name"]}

Q: "Which docking point saw the most departures during the first week of June 2025?"
{"query_type":"ranking_by_group","intent":"busiest station by departures","time_phrase":"first week of June 2025",\
"entities":{"station_name":null,"gender_tokens":null},"flags":{"needs_station_name":true,"needs_weather":false,\
"needs_distance":false,"needs_duration":false},"aggregation":"COUNT","measure":"departures","group_by":["station"],\
"k":1,"order":"desc","tables":["trips","stations"],"columns":["started_at","station_name"]}

Q: "How many kilometres were ridden by women on rainy days in June 2025?"
{"query_type":"scalar_aggregation","intent":"distance for women on rainy days in month","time_phrase":"June 2025",\
"entities":{"station_name":null,"gender_tokens":["women","female"]},"flags":{"needs_station_name":false,\
"needs_weather":true,"needs_distance":true,"needs_duration":false},"aggregation":"SUM","measure":"trip_distance_km",\
"group_by":null,"k":null,"order":null,"tables":["trips","daily_weather"],\
"columns":["trip_distance_km","rider_gender","precipitation_mm"]}"""


@dataclass
class SlotExtractor:
    """LLM-first slot extraction with a heuristic safety net."""

    client: GroqClient = field(default_factory=GroqClient)
    enabled: bool = ENABLE_LLM_SLOT_EXTRACTION

    def extract(self, question: str, schema_summary: str) -> IntentSlots:
        """
        Extract slots for a question.

        Args:
            question: Raw question text
            schema_summary: `table(col, ...)` listing for the prompt

        Returns:
            IntentSlots from the LLM when usable, else heuristic_slots(question)
        """
        if not self.enabled or not self.client.api_key:
            logger.debug("slot_extraction_heuristic_only", enabled=self.enabled)
            return heuristic_slots(question)

        user_prompt = f"Schema:\n{schema_summary}\n\nQuestion: {question}"
        result = call_llm(
            feature=LLMFeature.SLOT_EXTRACTION,
            system=SLOT_SYSTEM_PROMPT,
            user=user_prompt,
            client=self.client,
        )

        if result.error or not isinstance(result.payload, dict):
            logger.warning(
                "slot_extraction_fallback",
                reason=result.error or "payload_not_object",
                timed_out=result.timed_out,
                latency_ms=result.latency_ms,
            )
            return heuristic_slots(question)

        validation = validate_shape(result.payload, "slots")
        if not validation.valid:
            logger.warning("slot_extraction_fallback", reason="invalid_shape", errors=validation.errors)
            return heuristic_slots(question)

        slots = IntentSlots.from_payload(result.payload)
        logger.info(
            "slot_extraction_success",
            query_type=slots.query_type,
            aggregation=slots.aggregation,
            tables=list(slots.tables),
            latency_ms=result.latency_ms,
        )
        return slots
