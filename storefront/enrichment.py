"""Describe a venue: geocode its address, find a photo, derive a rating.

``LocationEnrichmentService.resolve`` never raises. When the geocoder is
down or has no match it returns the deterministic fallback, tagged as such
so callers can show it with lower confidence.

``EnrichmentQueue`` runs lookups one at a time with a minimum delay between
them; the geocoder's usage policy does not allow bursts.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import httpx

from storefront.config import settings
from storefront.fallback import (
    deterministic_rating,
    fallback_details,
    placeholder_image,
    rating_key,
)
from storefront.geocoder import (
    fetch_wiki_image,
    place_amenity,
    place_city,
    place_country,
    place_wikidata_id,
    search_places,
    select_best_place,
)
from storefront.models import EnrichmentSource, LocationDetails

logger = logging.getLogger(__name__)

ResolveFn = Callable[[str, int], Awaitable[Optional[LocationDetails]]]
ResultCallback = Callable[[int, Optional[LocationDetails]], None]


def describe_place(query: str, place: dict) -> str:
    """Human-readable summary of a geocoder match."""
    parts = [query]
    display_name = place.get("display_name")
    if display_name:
        parts.append(f"Located at {display_name}.")
    where = ", ".join(p for p in (place_city(place), place_country(place)) if p)
    if where:
        parts.append(f"Based in {where}.")
    amenity = place_amenity(place)
    if amenity:
        parts.append(f"This venue is listed as a {amenity.replace('_', ' ')}.")
    return " ".join(parts)


class LocationEnrichmentService:
    """Turn a free-text venue address into LocationDetails."""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def resolve(self, query: str, organizer_id: int) -> Optional[LocationDetails]:
        """Describe the venue at ``query``.

        Returns None for a blank query (nothing is looked up; the caller
        shows the organizer's own fields). Otherwise always returns details,
        falling back to locally derived ones on any failure.
        """
        query = (query or "").strip()
        if not query:
            return None

        try:
            return await self._resolve(query, organizer_id)
        except Exception:
            logger.exception(
                "Enrichment failed for organizer %d (%r); using fallback",
                organizer_id,
                query,
            )
            return fallback_details(query, organizer_id)

    async def _resolve(self, query: str, organizer_id: int) -> LocationDetails:
        try:
            places = await search_places(self.client, query)
        except httpx.HTTPError as e:
            logger.warning("Geocoding %r failed: %s", query, e)
            return fallback_details(query, organizer_id)

        place = select_best_place(places)
        if place is None:
            logger.info("No geocoder match for %r", query)
            return fallback_details(query, organizer_id)

        place_id = place.get("osm_id") or place.get("place_id")
        rating = deterministic_rating(rating_key(query, organizer_id, place_id))

        image = None
        wikidata_id = place_wikidata_id(place)
        if wikidata_id:
            image = await fetch_wiki_image(self.client, wikidata_id)
        if not image:
            image = placeholder_image(query, organizer_id)

        return LocationDetails(
            description=describe_place(query, place),
            image=image,
            rating=rating,
            source=EnrichmentSource.RESOLVED,
        )


class EnrichmentQueue:
    """Single worker that resolves venues sequentially.

    Jobs are dispatched in submission order with at least ``delay`` seconds
    between consecutive dispatches. Each result is handed to ``on_result``
    and also returned through the future ``submit`` gives back.
    """

    def __init__(
        self,
        resolve: ResolveFn,
        on_result: ResultCallback,
        *,
        delay: float | None = None,
    ):
        self._resolve = resolve
        self._on_result = on_result
        self.delay = settings.geocode_delay_seconds if delay is None else delay
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._last_dispatch: float | None = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def submit(self, organizer_id: int, query: str) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._queue.put_nowait((organizer_id, query, future))
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._run())
        return future

    async def join(self) -> None:
        """Wait until every submitted job has been processed."""
        await self._queue.join()

    async def close(self) -> None:
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None

    async def _wait_turn(self) -> None:
        loop = asyncio.get_running_loop()
        if self._last_dispatch is not None:
            wait = self.delay - (loop.time() - self._last_dispatch)
            if wait > 0:
                await asyncio.sleep(wait)
        self._last_dispatch = loop.time()

    async def _run(self) -> None:
        while True:
            organizer_id, query, future = await self._queue.get()
            try:
                await self._wait_turn()
                details = await self._resolve(query, organizer_id)
                self._on_result(organizer_id, details)
                if not future.done():
                    future.set_result(details)
            except Exception as e:
                logger.exception("Enrichment job for organizer %d failed", organizer_id)
                if not future.done():
                    future.set_exception(e)
            finally:
                self._queue.task_done()
