"""Deterministic stand-ins for venue photos and ratings.

Everything here is derived from the venue's identity so the same venue
always gets the same placeholder and rating, without storing anything.
"""

from urllib.parse import quote

from storefront.config import settings
from storefront.models import EnrichmentSource, LocationDetails

PLACEHOLDER_COLORS = ["6366f1", "ef4444", "10b981", "f59e0b", "8b5cf6", "ec4899"]
PLACEHOLDER_LABEL_LENGTH = 20

RATING_BASE = 3.5
RATING_BUCKETS = 15

# Characters encodeURIComponent leaves alone; keeps labels identical to the web client.
_URI_COMPONENT_SAFE = "-_.!~*'()"


def rating_key(query: str, organizer_id: int, place_id: object = None) -> str:
    return f"{place_id or query}_{organizer_id}"


def deterministic_rating(key: str) -> float:
    """Map a key onto 3.5 .. 4.9 in steps of 0.1."""
    total = sum(ord(c) for c in key)
    return round(RATING_BASE + (total % RATING_BUCKETS) / 10, 1)


def placeholder_image(query: str, organizer_id: int) -> str:
    color = PLACEHOLDER_COLORS[organizer_id % len(PLACEHOLDER_COLORS)]
    label = quote(query[:PLACEHOLDER_LABEL_LENGTH], safe=_URI_COMPONENT_SAFE)
    return f"{settings.placeholder_url}/{color}/ffffff?text={label}&font=Open+Sans"


def fallback_description(query: str) -> str:
    return f"{query}. Detailed location information is not available yet."


def fallback_details(query: str, organizer_id: int) -> LocationDetails:
    """Low-confidence details used whenever the geocoder cannot help."""
    return LocationDetails(
        description=fallback_description(query),
        image=placeholder_image(query, organizer_id),
        rating=deterministic_rating(rating_key(query, organizer_id)),
        source=EnrichmentSource.FALLBACK,
    )
