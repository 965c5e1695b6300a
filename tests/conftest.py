"""
Pytest configuration and fixtures for bike-share analytics tests.
"""

import sys
from datetime import date
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from bikeshare_analytics.core.intent_slots import SlotExtractor  # noqa: E402
from bikeshare_analytics.core.nl_query_engine import QueryTranslator  # noqa: E402
from bikeshare_analytics.core.schema_catalog import ColumnDescriptor, SchemaCatalog  # noqa: E402

TIMESTAMP = "timestamp without time zone"
TEXT = "character varying"

STATION_NAMES = ("Congress Avenue", "Riverside Drive", "City Hall", "Lakeside Park")
GENDER_VALUES = ("female", "male", "non-binary")
BIKE_MODELS = ("Classic", "E-Bike")


def make_bikeshare_columns() -> list[ColumnDescriptor]:
    """Column metadata of the reference bike-share schema, with value samples."""
    return [
        ColumnDescriptor("trips", "trip_id", "integer"),
        ColumnDescriptor("trips", "started_at", TIMESTAMP),
        ColumnDescriptor("trips", "ended_at", TIMESTAMP),
        ColumnDescriptor("trips", "start_station_id", "integer"),
        ColumnDescriptor("trips", "end_station_id", "integer"),
        ColumnDescriptor("trips", "bike_id", "integer"),
        ColumnDescriptor("trips", "rider_gender", TEXT, GENDER_VALUES),
        ColumnDescriptor("trips", "rider_birth_year", "integer"),
        ColumnDescriptor("trips", "trip_distance_km", "numeric"),
        ColumnDescriptor("stations", "station_id", "integer"),
        ColumnDescriptor("stations", "station_name", TEXT, STATION_NAMES),
        ColumnDescriptor("stations", "latitude", "numeric"),
        ColumnDescriptor("stations", "longitude", "numeric"),
        ColumnDescriptor("stations", "capacity", "integer"),
        ColumnDescriptor("bikes", "bike_id", "integer"),
        ColumnDescriptor("bikes", "model", TEXT, BIKE_MODELS),
        ColumnDescriptor("bikes", "purchase_date", "date"),
        ColumnDescriptor("bikes", "current_station_id", "integer"),
        ColumnDescriptor("daily_weather", "weather_date", "date"),
        ColumnDescriptor("daily_weather", "high_temp_c", "numeric"),
        ColumnDescriptor("daily_weather", "low_temp_c", "numeric"),
        ColumnDescriptor("daily_weather", "precipitation_mm", "numeric"),
    ]


@pytest.fixture
def bikeshare_columns() -> list[ColumnDescriptor]:
    return make_bikeshare_columns()


@pytest.fixture
def bikeshare_catalog(bikeshare_columns) -> SchemaCatalog:
    """Pre-populated catalog; no database involved."""
    return SchemaCatalog.from_columns(bikeshare_columns)


@pytest.fixture
def today() -> date:
    """Fixed reference date for relative phrases ("last month", ages)."""
    return date(2025, 8, 15)


@pytest.fixture
def translator(bikeshare_catalog, today) -> QueryTranslator:
    """Translator over the fake catalog with LLM slot extraction switched off."""
    return QueryTranslator(
        bikeshare_catalog,
        slot_extractor=SlotExtractor(enabled=False),
        today_provider=lambda: today,
        reference_year=2025,
    )
