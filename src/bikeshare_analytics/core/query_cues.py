"""
Vocabulary cues shared by the rule cascades.

Phrase matching is word-bounded so "women" never matches "men" and "ride"
never matches "ridership". Every helper takes raw or lowercased question text.
"""

import re
from functools import lru_cache

TRIP_WORDS = (
    "trip",
    "trips",
    "ride",
    "rides",
    "ridden",
    "rider",
    "riders",
    "journey",
    "journeys",
    "departure",
    "departures",
    "arrival",
    "arrivals",
    "started",
    "ended",
)
TIME_WORDS = ("time", "duration", "how long", "average", "minutes")
RANKING_WORDS = ("most", "highest", "busiest", "top", "largest", "greatest")
STATION_WORDS = ("station", "stations", "dock", "docks", "docking", "docking point", "location", "place")
WEATHER_WORDS = (
    "weather",
    "rain",
    "rainy",
    "raining",
    "wet",
    "dry",
    "precipitation",
    "hot",
    "cold",
    "temperature",
    "temp",
)
FEMALE_WORDS = ("women", "woman", "female", "females")
MALE_WORDS = ("men", "man", "male", "males")
GENDER_WORDS = FEMALE_WORDS + MALE_WORDS + ("gender",)
DISTANCE_WORDS = (
    "distance",
    "km",
    "kilometre",
    "kilometres",
    "kilometer",
    "kilometers",
    "meters",
    "metres",
)
SPEED_WORDS = (
    "speed",
    "pace",
    "km per hour",
    "kilometres per hour",
    "kilometers per hour",
    "km/h",
    "kph",
    "mph",
)
DURATION_WORDS = ("ride time", "journey", "journeys", "trip duration", "duration", "ride length", "how long")
AVERAGE_WORDS = ("average", "avg", "mean")
COUNT_WORDS = ("how many", "count", "number of")
BIKE_WORDS = ("bike", "bikes", "bicycle", "bicycles")
BIKE_PURCHASE_WORDS = ("purchased", "purchase", "bought", "acquired", "acquisition", "inventory")
BIKE_LOCATION_WORDS = ("where", "currently", "docked")


@lru_cache(maxsize=512)
def _phrase_pattern(phrase: str) -> re.Pattern:
    return re.compile(rf"(?<![a-z0-9]){re.escape(phrase)}(?![a-z0-9])")


def mentions(text: str, *phrases: str) -> bool:
    """True if any phrase occurs in text as a whole word (case-insensitive)."""
    lowered = text.lower()
    return any(_phrase_pattern(phrase.lower()).search(lowered) for phrase in phrases)


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens (letters, digits, underscore)."""
    return re.findall(r"[a-z0-9_]+", text.lower())


def is_ranking_query(text: str) -> bool:
    """Superlative or "which station/departures/dock" phrasing."""
    if mentions(text, *RANKING_WORDS):
        return True
    return mentions(text, "which") and mentions(text, "station", "stations", "departures", "dock", "docking")


def is_trip_query(text: str) -> bool:
    return mentions(text, *TRIP_WORDS)


def is_speed_query(text: str) -> bool:
    return mentions(text, *SPEED_WORDS)


def is_duration_query(text: str) -> bool:
    return mentions(text, *AVERAGE_WORDS) and mentions(text, *DURATION_WORDS)


def is_weather_query(text: str) -> bool:
    return mentions(text, *WEATHER_WORDS)


def is_bike_location_query(text: str) -> bool:
    return mentions(text, *BIKE_WORDS) and mentions(text, *BIKE_LOCATION_WORDS)


def is_bike_inventory_query(text: str) -> bool:
    """Row-list questions about the bike fleet itself rather than rides."""
    if not mentions(text, *BIKE_WORDS):
        return False
    return (
        mentions(text, *BIKE_PURCHASE_WORDS)
        or mentions(text, "show bikes", "list bikes", "which bikes")
        or is_bike_location_query(text)
    )


def top_n(text: str) -> int | None:
    """Row count from an explicit "top N" phrase."""
    match = re.search(r"\btop\s+(\d+)\b", text.lower())
    return int(match.group(1)) if match else None
