"""Tests for the query API endpoints.

Tests cover:
- POST /api/query - Translate and execute (success, rejection, untranslatable, execution failure)
- GET /api/schema - Catalog introspection
- GET /api/test-cases - Reference questions
- GET /health
"""

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from bikeshare_analytics.api.dependencies import get_catalog, get_datastore, get_translator
from bikeshare_analytics.api.routes import queries
from bikeshare_analytics.core.errors import QueryExecutionError
from bikeshare_analytics.core.schema_catalog import SchemaCatalog

# ============================================================================
# Test App Setup
# ============================================================================


@pytest.fixture(scope="function")
def test_app():
    """Create FastAPI test app without lifespan (no catalog warm-up)."""
    app = FastAPI(title="Bike-Share Analytics API (Test)")
    app.include_router(queries.router, prefix="/api", tags=["queries"])
    return app


@pytest.fixture
def mock_datastore():
    datastore = MagicMock()
    datastore.execute.return_value = [{"total_kilometres": Decimal("6.8")}]
    return datastore


@pytest.fixture
def client(test_app, translator, bikeshare_catalog, mock_datastore):
    """Test client with translator, catalog and data store overridden."""
    test_app.dependency_overrides[get_translator] = lambda: translator
    test_app.dependency_overrides[get_catalog] = lambda: bikeshare_catalog
    test_app.dependency_overrides[get_datastore] = lambda: mock_datastore
    yield TestClient(test_app)
    test_app.dependency_overrides.clear()


# ============================================================================
# POST /api/query
# ============================================================================


class TestRunQuery:
    """Test POST /api/query."""

    def test_single_row_result_is_an_object(self, client, mock_datastore):
        # Arrange
        question = "How many kilometres were ridden by women on rainy days in June 2025?"

        # Act
        response = client.post("/api/query", json={"question": question})

        # Assert
        assert response.status_code == 200
        body = response.json()
        assert body["query"].startswith("SELECT ROUND(SUM(t.trip_distance_km)::numeric, 1) AS total_kilometres")
        assert body["parameters"] == ["2025-06-01", "2025-07-01", "female", 0]
        assert body["result"] == {"total_kilometres": 6.8}
        assert body["error"] is None
        mock_datastore.execute.assert_called_once_with(
            body["query"], [date(2025, 6, 1), date(2025, 7, 1), "female", 0]
        )

    def test_multiple_rows_result_is_a_list(self, client, mock_datastore):
        # Arrange
        mock_datastore.execute.return_value = [
            {"ride_date": date(2025, 6, 1), "ride_count": 4},
            {"ride_date": date(2025, 6, 2), "ride_count": 7},
        ]

        # Act
        response = client.post("/api/query", json={"question": "How many rides per day in June 2025?"})

        # Assert
        assert response.status_code == 200
        assert response.json()["result"] == [
            {"ride_date": "2025-06-01", "ride_count": 4},
            {"ride_date": "2025-06-02", "ride_count": 7},
        ]

    def test_unsafe_question_returns_400(self, client, mock_datastore):
        # Act
        response = client.post("/api/query", json={"question": "rides; DROP TABLE trips"})

        # Assert
        assert response.status_code == 400
        body = response.json()
        assert body["query"] is None
        assert body["error"]
        mock_datastore.execute.assert_not_called()

    def test_untranslatable_question_returns_422(self, client, mock_datastore):
        # Act
        response = client.post("/api/query", json={"question": "asdf qwerty"})

        # Assert
        assert response.status_code == 422
        assert response.json()["error"]
        mock_datastore.execute.assert_not_called()

    def test_execution_failure_returns_500_with_query(self, client, mock_datastore):
        # Arrange
        mock_datastore.execute.side_effect = QueryExecutionError("Query execution failed: ProgrammingError")

        # Act
        response = client.post(
            "/api/query",
            json={"question": "Which docking point saw the most departures during the first week of June 2025?"},
        )

        # Assert
        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Query execution failed: ProgrammingError"
        assert body["query"].endswith("ORDER BY departure_count DESC LIMIT 1")

    def test_missing_question_is_a_validation_error(self, client):
        # Act
        response = client.post("/api/query", json={})

        # Assert
        assert response.status_code == 422


# ============================================================================
# GET /api/schema and /api/test-cases
# ============================================================================


class TestSchema:
    """Test GET /api/schema."""

    def test_lists_tables_and_columns(self, client):
        # Act
        response = client.get("/api/schema")

        # Assert
        assert response.status_code == 200
        tables = response.json()["tables"]
        assert list(tables) == ["trips", "stations", "bikes", "daily_weather"]
        assert {"column": "precipitation_mm", "data_type": "numeric"} in tables["daily_weather"]

    def test_unreachable_database_returns_503(self, test_app):
        # Arrange
        source = MagicMock()
        source.list_columns.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
        test_app.dependency_overrides[get_catalog] = lambda: SchemaCatalog(source)
        client = TestClient(test_app)

        # Act
        response = client.get("/api/schema")

        # Assert
        assert response.status_code == 503


class TestTestCases:
    """Test GET /api/test-cases."""

    def test_returns_reference_questions(self, client):
        # Act
        response = client.get("/api/test-cases")

        # Assert
        assert response.status_code == 200
        cases = response.json()["test_cases"]
        assert [c["id"] for c in cases] == ["T-1", "T-2", "T-3"]
        assert cases[2]["expected"] == "6.8 km"


def test_health_check():
    """GET /health answers without running the lifespan."""
    from bikeshare_analytics.api.main import app

    # Act
    response = TestClient(app).get("/health")

    # Assert
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "bikeshare-analytics-api"}
