"""
Tests for the aggregation cascade.

Tests cover:
- Duration, distance, ranking and count precede the named phrasings
- Distance wins over named COUNT phrasings; speed rates are not distances
- Unit scaling for meter-based distance columns
- Generic average skips identifier columns and falls back to COUNT(*)
- Bike inventory questions yield no aggregation
"""

import pytest

from bikeshare_analytics.core.aggregation import AggregationContext, extract_aggregations, is_identifier_column
from bikeshare_analytics.core.mapper import SemanticMapper
from bikeshare_analytics.core.nl_query_config import METERS_TO_KM
from bikeshare_analytics.core.query_plan import DURATION_MEASURE, AggregationRequest
from bikeshare_analytics.core.schema_catalog import ColumnDescriptor, SchemaCatalog


def _aggregate(catalog: SchemaCatalog, question: str, primary_table: str = "trips") -> list[AggregationRequest]:
    mapping = SemanticMapper(catalog).map(question)
    return extract_aggregations(
        AggregationContext(text=question, columns=mapping.columns, primary_table=primary_table, catalog=catalog)
    )


class TestCascadeOrder:
    """First applicable rule wins."""

    def test_average_ride_time_is_duration(self, bikeshare_catalog):
        # Act
        result = _aggregate(
            bikeshare_catalog,
            "What was the average ride time for journeys that started at Congress Avenue in June 2025?",
        )

        # Assert
        assert result == [AggregationRequest("DURATION", DURATION_MEASURE, "average_ride_time_minutes", "trips")]

    def test_mean_trip_duration_alias(self, bikeshare_catalog):
        # Act
        result = _aggregate(bikeshare_catalog, "What was the mean trip duration in June 2025?")

        # Assert
        assert result[0].alias == "mean_trip_duration_minutes"

    def test_most_departures_counts(self, bikeshare_catalog):
        # Act
        result = _aggregate(
            bikeshare_catalog, "Which docking point saw the most departures during the first week of June 2025?"
        )

        # Assert
        assert result == [AggregationRequest("COUNT", "*", "departure_count")]

    def test_most_arrivals_alias(self, bikeshare_catalog):
        # Act
        result = _aggregate(bikeshare_catalog, "Which station had the most arrivals in June 2025?")

        # Assert
        assert result == [AggregationRequest("COUNT", "*", "arrival_count")]

    def test_kilometres_sum_distance(self, bikeshare_catalog):
        # Act
        result = _aggregate(bikeshare_catalog, "How many kilometres were ridden by women on rainy days in June 2025?")

        # Assert
        assert result == [AggregationRequest("SUM", "trip_distance_km", "total_kilometres", "trips", None)]

    def test_speed_before_distance(self, bikeshare_catalog):
        # Act
        result = _aggregate(bikeshare_catalog, "What was the average speed in km/h in June 2025?")

        # Assert
        assert result[0].function == "SPEED"
        assert result[0].column == "trip_distance_km"
        assert result[0].alias == "average_speed_kmh"

    def test_top_by_average_distance(self, bikeshare_catalog):
        # Act
        result = _aggregate(bikeshare_catalog, "Show the top 3 stations by average distance in June 2025")

        # Assert
        assert result == [AggregationRequest("AVG", "trip_distance_km", "average_distance", "trips", None)]

    def test_rainy_weekday_alias(self, bikeshare_catalog):
        # Act
        result = _aggregate(bikeshare_catalog, "Show rides on rainy weekdays in June 2025")

        # Assert
        assert result == [AggregationRequest("COUNT", "*", "rainy_weekday_rides")]

    def test_how_many_precedes_named_phrasing(self, bikeshare_catalog):
        # Act
        result = _aggregate(bikeshare_catalog, "How many rides on rainy weekdays in June 2025?")

        # Assert
        assert result == [AggregationRequest("COUNT", "*", "total_count")]

    def test_total_rides_last_month_alias(self, bikeshare_catalog):
        # Act
        result = _aggregate(bikeshare_catalog, "What were the total rides last month?")

        # Assert
        assert result == [AggregationRequest("COUNT", "*", "total_rides")]

    def test_how_many_counts(self, bikeshare_catalog):
        # Act
        result = _aggregate(bikeshare_catalog, "How many trips started at City Hall in June 2025?")

        # Assert
        assert result == [AggregationRequest("COUNT", "*", "total_count")]

    def test_bike_inventory_lists_rows(self, bikeshare_catalog):
        # Act
        result = _aggregate(bikeshare_catalog, "Show bikes purchased in 2024", primary_table="bikes")

        # Assert
        assert result == []


class TestDistanceUnits:
    """Meter columns are scaled to kilometres."""

    def test_meter_column_scaled(self):
        # Arrange
        catalog = SchemaCatalog.from_columns(
            [
                ColumnDescriptor("trips", "trip_id", "integer"),
                ColumnDescriptor("trips", "started_at", "timestamp without time zone"),
                ColumnDescriptor("trips", "distance_meters", "integer"),
            ]
        )

        # Act
        result = _aggregate(catalog, "How many kilometres were ridden in June 2025?")

        # Assert
        assert result == [
            AggregationRequest("SUM", "distance_meters", "total_kilometres", "trips", METERS_TO_KM),
        ]


class TestGenericAverage:
    """Fallback average over the primary table."""

    def test_average_capacity(self, bikeshare_catalog):
        # Act
        result = _aggregate(bikeshare_catalog, "What is the average capacity of stations?", primary_table="stations")

        # Assert
        assert result == [AggregationRequest("AVG", "capacity", "average_value", "stations")]

    def test_no_numeric_column_falls_back_to_count(self, bikeshare_catalog):
        # Arrange
        ctx = AggregationContext(
            text="average of something", columns=[], primary_table="stations", catalog=bikeshare_catalog
        )

        # Act
        result = extract_aggregations(ctx)

        # Assert
        assert result == [AggregationRequest("COUNT", "*", "total_count")]


@pytest.mark.parametrize(
    ("column_name", "expected"),
    [("id", True), ("trip_id", True), ("id_station", True), ("capacity", False), ("idle_minutes", False)],
)
def test_is_identifier_column(column_name, expected):
    assert is_identifier_column(column_name) is expected


class TestDistanceBeforeNamedPhrasings:
    """Distance vocabulary is never downgraded to a ride count."""

    @pytest.mark.parametrize(
        "question",
        [
            "How many kilometres were ridden on rainy weekdays in June 2025?",
            "What was the total distance of rides last month?",
            "How many kilometres were ridden per day in June 2025?",
            "Show the weekend departures distance in June 2025",
        ],
    )
    def test_distance_sum_wins(self, bikeshare_catalog, question):
        # Act
        result = _aggregate(bikeshare_catalog, question)

        # Assert
        assert result == [AggregationRequest("SUM", "trip_distance_km", "total_kilometres", "trips", None)]

    def test_sum_distance_by_end_station_uses_kilometre_alias(self, bikeshare_catalog):
        # Act
        result = _aggregate(bikeshare_catalog, "Show the sum distance by end station in June 2025")

        # Assert
        assert result == [AggregationRequest("SUM", "trip_distance_km", "total_kilometres", "trips", None)]

    def test_kilometres_per_hour_is_speed(self, bikeshare_catalog):
        # Act
        result = _aggregate(bikeshare_catalog, "What was the average pace in kilometres per hour in June 2025?")

        # Assert
        assert result[0].function == "SPEED"
