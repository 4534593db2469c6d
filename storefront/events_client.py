"""Fetch pages of events from the storefront backend."""

import logging

import httpx
from pydantic import ValidationError

from storefront.config import settings
from storefront.errors import NetworkError, PayloadError
from storefront.models import EventFilters, EventPage, EventRecord

logger = logging.getLogger(__name__)


def build_params(page: int, page_size: int, filters: EventFilters) -> dict:
    """Query string for ``GET /events``. The search term stays client-side."""
    params: dict = {"page": page, "per_page": page_size}
    if filters.category:
        params["category"] = filters.category
    if filters.organizer_id is not None:
        params["organizer"] = filters.organizer_id
    return params


def parse_events_page(data: dict) -> EventPage:
    """Convert a listing payload into an EventPage.

    The backend reports totals either as a top-level ``total`` or inside a
    ``pagination`` object (``total``, ``has_next``); both are accepted.
    """
    if not isinstance(data, dict) or not isinstance(data.get("events"), list):
        raise PayloadError("Events payload has no 'events' list")

    events = [EventRecord.model_validate(item) for item in data["events"]]

    total = data.get("total")
    has_next = None
    pagination = data.get("pagination")
    if isinstance(pagination, dict):
        if total is None:
            total = pagination.get("total")
        has_next = pagination.get("has_next")

    return EventPage(events=events, total=total, has_next=has_next)


async def fetch_events_page(
    client: httpx.AsyncClient,
    page: int,
    page_size: int,
    filters: EventFilters | None = None,
) -> EventPage:
    """Request one page of events.

    Raises:
        NetworkError: transport failure or non-success status.
        PayloadError: the response is not an events listing.
    """
    filters = filters or EventFilters()
    url = f"{settings.api_base_url.rstrip('/')}/events"
    params = build_params(page, page_size, filters)

    logger.debug("Fetching events page %d (per_page=%d)", page, page_size)
    try:
        resp = await client.get(url, params=params)
        resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise NetworkError(
            f"Events page {page} failed with HTTP {e.response.status_code}",
            page=page,
            status_code=e.response.status_code,
        ) from e
    except httpx.HTTPError as e:
        raise NetworkError(f"Events page {page} failed: {e}", page=page) from e

    try:
        result = parse_events_page(resp.json())
    except (ValueError, ValidationError) as e:
        raise PayloadError(f"Malformed events page {page}: {e}", page=page) from e

    logger.info(
        "Fetched page %d: %d events (total=%s)", page, len(result.events), result.total
    )
    return result
