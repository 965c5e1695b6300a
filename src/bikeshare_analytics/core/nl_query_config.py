"""NL Query Translator Configuration Constants.

Single source of truth for scoring weights, schema vocabulary and LLM settings.
These are domain config, not code - adjust without code changes.
"""

import os

# Fixed bike-share schema vocabulary (table names as stored in the catalog)
FACT_TABLE = "trips"
STATION_TABLE = "stations"
WEATHER_TABLE = "daily_weather"
BIKE_TABLE = "bikes"

# Join role for the second (destination) stations join
END_STATION_ROLE = "end_stations"

# Table aliases used in emitted SQL, keyed by table name or join role
TABLE_ALIASES = {
    FACT_TABLE: "t",
    STATION_TABLE: "s",
    END_STATION_ROLE: "s2",
    WEATHER_TABLE: "w",
    BIKE_TABLE: "b",
}

# Well-known columns of the fixed join paths (verified against the catalog before use)
FACT_START_COLUMN = "started_at"
FACT_END_COLUMN = "ended_at"
FACT_START_STATION_COLUMN = "start_station_id"
FACT_END_STATION_COLUMN = "end_station_id"
STATION_KEY_COLUMN = "station_id"
STATION_NAME_COLUMN = "station_name"
WEATHER_DATE_COLUMN = "weather_date"
BIKE_STATION_COLUMN = "current_station_id"

# Landmark phrases mapped to their stored station name
KNOWN_LANDMARKS = {
    "congress avenue": "Congress Avenue",
    "congress": "Congress Avenue",
}

# Column scoring weights (semantic mapper)
EXACT_MATCH_SCORE = 100
PARTIAL_CONTAINS_SCORE = 50  # Column name contains question word
PARTIAL_CONTAINED_SCORE = 30  # Question word contains column name
SUB_TOKEN_SCORE = 25
TYPE_MATCH_SCORE = 40
TEXT_VOCABULARY_SCORE = 35  # Gender / weather words on text columns
VALUE_OVERLAP_SCORE = 30
CARDINALITY_SCORE = 10
CARDINALITY_THRESHOLD = 10  # More than this many sampled values earns the bonus
MIN_WORD_LENGTH = 3  # Words shorter than this skip partial matching

# Slot boosts applied after advisory extraction
TABLE_BOOST = 20
COLUMN_BOOST = 15

# Retention
COLUMN_SCORE_FLOOR = -10  # Permissive: almost nothing is dropped by score
MIN_TABLE_SCORE = 1  # A table must score at least this to be relevant
MAX_TABLES = 3
MAX_COLUMNS = 15
MAX_LISTED_COLUMNS = 5  # Non-aggregate SELECT cap

# Schema catalog sampling
SAMPLE_VALUE_LIMIT = 50
MAX_SAMPLED_COLUMNS = 10

# Filter defaults
DEFAULT_HOT_THRESHOLD_C = 30
DEFAULT_COLD_THRESHOLD_C = 0
METERS_TO_KM = 0.001

# Age filters subtract from this year; defaults to the current year when unset
_age_reference_year = os.getenv("AGE_REFERENCE_YEAR")
AGE_REFERENCE_YEAR = int(_age_reference_year) if _age_reference_year else None

# Input guard
MAX_QUESTION_LENGTH = int(os.getenv("MAX_QUESTION_LENGTH", "500"))
SCHEMA_REFRESH_TIMEOUT_SECONDS = float(os.getenv("SCHEMA_REFRESH_TIMEOUT_SECONDS", "10.0"))

# Advisory slot extraction (Groq OpenAI-compatible chat completions)
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
GROQ_BASE_URL = os.getenv("GROQ_BASE_URL", "https://api.groq.com/openai/v1")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama3-8b-8192")
GROQ_TEMPERATURE = float(os.getenv("GROQ_TEMPERATURE", "0.1"))
GROQ_MAX_TOKENS = int(os.getenv("GROQ_MAX_TOKENS", "1000"))
SLOT_EXTRACTION_TIMEOUT_SECONDS = float(os.getenv("SLOT_EXTRACTION_TIMEOUT_SECONDS", "5.0"))
ENABLE_LLM_SLOT_EXTRACTION = os.getenv("ENABLE_LLM_SLOT_EXTRACTION", "true").lower() == "true"
