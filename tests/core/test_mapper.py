"""
Tests for the semantic column mapper.

Tests cover:
- Structural scoring: name similarity, domain words, type compatibility, sampled values
- Table ranking, relevance floor and caps
- Slot boosts for schema names the extractor recognised
- NoRelevantTablesError for gibberish
"""

import pytest

from bikeshare_analytics.core.errors import NoRelevantTablesError
from bikeshare_analytics.core.intent_slots import IntentSlots
from bikeshare_analytics.core.mapper import SemanticMapper
from bikeshare_analytics.core.nl_query_config import (
    MAX_COLUMNS,
    MAX_TABLES,
    TABLE_BOOST,
    TEXT_VOCABULARY_SCORE,
    VALUE_OVERLAP_SCORE,
)
from bikeshare_analytics.core.schema_catalog import ColumnDescriptor


@pytest.fixture
def mapper(bikeshare_catalog):
    return SemanticMapper(bikeshare_catalog)


class TestScoreColumn:
    """Additive column scoring."""

    def test_exact_name_outscores_siblings(self, mapper, bikeshare_catalog):
        # Arrange
        question = "What is the capacity of each station?"
        capacity = bikeshare_catalog.find("capacity", "stations")
        latitude = bikeshare_catalog.find("latitude", "stations")

        # Act
        capacity_score = mapper.score_column(question, capacity)
        latitude_score = mapper.score_column(question, latitude)

        # Assert
        assert capacity_score > latitude_score

    def test_sampled_value_overlap_adds_bonus(self, mapper):
        # Arrange
        question = "How many trips started at City Hall?"
        sampled = ColumnDescriptor("stations", "station_name", "character varying", ("City Hall", "Riverside Drive"))
        unsampled = ColumnDescriptor("stations", "station_name", "character varying")

        # Act
        with_values = mapper.score_column(question, sampled)
        without_values = mapper.score_column(question, unsampled)

        # Assert
        assert with_values - without_values == VALUE_OVERLAP_SCORE

    def test_gender_words_reward_text_columns(self, mapper, bikeshare_catalog):
        # Arrange
        gender = bikeshare_catalog.find("rider_gender", "trips")
        plain = ColumnDescriptor("trips", "rider_gender", "integer")

        # Act
        text_score = mapper.score_column("rides by women", gender)
        numeric_score = mapper.score_column("rides by women", plain)

        # Assert
        assert text_score - numeric_score >= TEXT_VOCABULARY_SCORE

    def test_irrelevant_question_scores_zero(self, mapper, bikeshare_catalog):
        # Act
        scores = [mapper.score_column("asdf qwerty", c) for c in bikeshare_catalog.columns]

        # Assert
        assert all(score == 0 for score in scores)


class TestMap:
    """Table/column ranking."""

    def test_distance_question_ranks_trips_first(self, mapper):
        # Act
        result = mapper.map("How many kilometres were ridden by women on rainy days in June 2025?")

        # Assert
        assert result.tables[0].table_name == "trips"
        assert "trip_distance_km" in result.column_names
        assert "daily_weather" in result.table_names

    def test_station_question_includes_stations(self, mapper):
        # Act
        result = mapper.map("Which docking point saw the most departures during the first week of June 2025?")

        # Assert
        assert "stations" in result.table_names
        assert "trips" in result.table_names

    def test_caps_and_column_restriction(self, mapper):
        # Act
        result = mapper.map("average trip distance and station capacity on rainy days for bikes by model")

        # Assert
        assert len(result.tables) <= MAX_TABLES
        assert len(result.columns) <= MAX_COLUMNS
        assert {c.table_name for c in result.columns} <= set(result.table_names)

    def test_tables_sorted_by_score(self, mapper):
        # Act
        result = mapper.map("How many rides started at Congress Avenue in June 2025?")

        # Assert
        scores = [t.score for t in result.tables]
        assert scores == sorted(scores, reverse=True)

    def test_slot_names_boost_table(self, mapper):
        # Arrange
        question = "list bikes"
        slots = IntentSlots(tables=("bikes",), columns=("model",))

        # Act
        plain = mapper.map(question)
        boosted = mapper.map(question, slots)

        # Assert
        plain_bikes = next(t for t in plain.tables if t.table_name == "bikes")
        boosted_bikes = next(t for t in boosted.tables if t.table_name == "bikes")
        assert boosted_bikes.score >= plain_bikes.score + TABLE_BOOST

    def test_gibberish_raises_no_relevant_tables(self, mapper):
        # Act & Assert
        with pytest.raises(NoRelevantTablesError) as exc_info:
            mapper.map("asdf qwerty")

        assert "No relevant tables found" in exc_info.value.message

    def test_slot_names_cannot_rescue_gibberish(self, mapper):
        # Arrange
        slots = IntentSlots(tables=("trips", "stations"), columns=("trip_id", "station_name"))

        # Act & Assert
        with pytest.raises(NoRelevantTablesError):
            mapper.map("asdf qwerty", slots)
