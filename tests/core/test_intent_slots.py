"""
Tests for advisory slot extraction.

Tests cover:
- Field-by-field payload validation (bad fields fall back to defaults)
- Restriction to catalog table/column names
- Keyword heuristics
- SlotExtractor: disabled, missing key, success, malformed output, timeout
"""

import json
from unittest.mock import MagicMock, patch

import requests

from bikeshare_analytics.core.intent_slots import IntentSlots, SlotExtractor, heuristic_slots
from bikeshare_analytics.core.llm_client import GroqClient

SLOT_PAYLOAD = {
    "query_type": "group_topk",
    "intent": "busiest station",
    "time_phrase": "first week of June 2025",
    "entities": {"station_name": None, "gender_tokens": None},
    "flags": {"needs_station_name": True, "needs_weather_rain": False},
    "aggregation": "count",
    "measure": "departures",
    "group_by": ["station"],
    "k": 1,
    "order": "DESC",
    "tables": ["trips", "stations", "docks"],
    "columns": ["started_at", "station_name", "dock_label"],
}


def _response(status_code: int = 200, payload: dict | None = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    return response


def _completion(content: str) -> MagicMock:
    return _response(payload={"choices": [{"message": {"content": content}}]})


class TestFromPayload:
    """Validation of LLM payloads."""

    def test_aliases_and_normalisation(self):
        # Act
        slots = IntentSlots.from_payload(SLOT_PAYLOAD)

        # Assert
        assert slots.query_type == "ranking_by_group"
        assert slots.aggregation == "COUNT"
        assert slots.order == "desc"
        assert slots.k == 1
        assert slots.needs_station_name is True
        assert slots.needs_weather is False
        assert slots.source == "llm"

    def test_invalid_fields_fall_back_independently(self):
        # Arrange
        payload = {"query_type": "nonsense", "k": True, "aggregation": "MEDIAN", "order": "sideways", "intent": "x"}

        # Act
        slots = IntentSlots.from_payload(payload)

        # Assert
        assert slots.query_type == "unknown"
        assert slots.k is None
        assert slots.aggregation is None
        assert slots.order is None
        assert slots.intent == "x"

    def test_restricted_to_known_names(self):
        # Arrange
        slots = IntentSlots.from_payload(SLOT_PAYLOAD)

        # Act
        restricted = slots.restricted_to({"trips", "stations"}, {"started_at", "station_name"})

        # Assert
        assert restricted.tables == ("trips", "stations")
        assert restricted.columns == ("started_at", "station_name")


class TestHeuristicSlots:
    """Keyword-only estimates."""

    def test_ranking_question(self):
        # Act
        slots = heuristic_slots("Which docking point saw the most departures during the first week of June 2025?")

        # Assert
        assert slots.query_type == "ranking_by_group"
        assert slots.k == 1
        assert slots.order == "desc"
        assert slots.time_phrase == "first week of june 2025"
        assert slots.tables == ()
        assert slots.source == "heuristic"

    def test_weather_and_gender_question(self):
        # Act
        slots = heuristic_slots("How many kilometres were ridden by women on rainy days in June 2025?")

        # Assert
        assert slots.query_type == "scalar_aggregation"
        assert slots.aggregation == "SUM"
        assert slots.needs_weather is True
        assert slots.needs_distance is True
        assert slots.gender_tokens == ("women",)

    def test_landmark_station(self):
        # Act
        slots = heuristic_slots("average ride time from Congress Avenue")

        # Assert
        assert slots.station_name == "Congress Avenue"
        assert slots.needs_duration is True


class TestSlotExtractor:
    """LLM-first extraction with heuristic fallback."""

    def test_disabled_uses_heuristics(self):
        # Arrange
        extractor = SlotExtractor(client=GroqClient(api_key="key"), enabled=False)

        # Act
        with patch("bikeshare_analytics.core.llm_client.requests.post") as mock_post:
            slots = extractor.extract("How many rides in June 2025?", "trips(trip_id)")

        # Assert
        assert slots.source == "heuristic"
        mock_post.assert_not_called()

    def test_missing_key_uses_heuristics(self):
        # Arrange
        extractor = SlotExtractor(client=GroqClient(api_key=None), enabled=True)

        # Act
        slots = extractor.extract("How many rides in June 2025?", "trips(trip_id)")

        # Assert
        assert slots.source == "heuristic"

    @patch("bikeshare_analytics.core.llm_client.requests.post")
    @patch("bikeshare_analytics.core.llm_client.requests.get")
    def test_success_parses_json_wrapped_in_prose(self, mock_get, mock_post):
        # Arrange
        mock_get.return_value = _response(200)
        mock_post.return_value = _completion("Here are the slots:\n```json\n" + json.dumps(SLOT_PAYLOAD) + "\n```")
        extractor = SlotExtractor(client=GroqClient(api_key="key"), enabled=True)

        # Act
        slots = extractor.extract("Which docking point saw the most departures?", "trips(trip_id)")

        # Assert
        assert slots.source == "llm"
        assert slots.query_type == "ranking_by_group"
        sent = mock_post.call_args.kwargs["json"]
        assert sent["messages"][0]["role"] == "system"
        assert "Which docking point" in sent["messages"][1]["content"]

    @patch("bikeshare_analytics.core.llm_client.requests.post")
    @patch("bikeshare_analytics.core.llm_client.requests.get")
    def test_malformed_output_falls_back(self, mock_get, mock_post):
        # Arrange
        mock_get.return_value = _response(200)
        mock_post.return_value = _completion("I cannot answer that.")
        extractor = SlotExtractor(client=GroqClient(api_key="key"), enabled=True)

        # Act
        slots = extractor.extract("How many rides in June 2025?", "trips(trip_id)")

        # Assert
        assert slots.source == "heuristic"

    @patch("bikeshare_analytics.core.llm_client.requests.post")
    @patch("bikeshare_analytics.core.llm_client.requests.get")
    def test_wrong_shape_falls_back(self, mock_get, mock_post):
        # Arrange
        mock_get.return_value = _response(200)
        mock_post.return_value = _completion('{"query_type": 7}')
        extractor = SlotExtractor(client=GroqClient(api_key="key"), enabled=True)

        # Act
        slots = extractor.extract("How many rides in June 2025?", "trips(trip_id)")

        # Assert
        assert slots.source == "heuristic"

    @patch("bikeshare_analytics.core.llm_client.requests.post")
    @patch("bikeshare_analytics.core.llm_client.requests.get")
    def test_timeout_falls_back(self, mock_get, mock_post):
        # Arrange
        mock_get.return_value = _response(200)
        mock_post.side_effect = requests.Timeout("slow")
        extractor = SlotExtractor(client=GroqClient(api_key="key"), enabled=True)

        # Act
        slots = extractor.extract("How many rides in June 2025?", "trips(trip_id)")

        # Assert
        assert slots.source == "heuristic"

    @patch("bikeshare_analytics.core.llm_client.requests.get")
    def test_unreachable_api_is_cached_as_unavailable(self, mock_get):
        # Arrange
        mock_get.side_effect = requests.ConnectionError("no route")
        client = GroqClient(api_key="key")

        # Act
        first = client.is_available()
        second = client.is_available()

        # Assert
        assert first is False
        assert second is False
        mock_get.assert_called_once()
