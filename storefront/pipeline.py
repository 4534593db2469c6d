"""Venue listing pipeline: fetch event pages, group by organizer, enrich."""

import argparse
import asyncio
import logging
from datetime import date
from typing import Optional

import httpx

from storefront.aggregator import VenueCollection
from storefront.config import configure_logging, settings
from storefront.enrichment import EnrichmentQueue, LocationEnrichmentService
from storefront.errors import FetchError
from storefront.events_client import fetch_events_page
from storefront.models import EventFilters, EventPage, LocationDetails, VenueGroup
from storefront.pagination import PaginationController
from storefront.projector import TAB_ALL, TABS

logger = logging.getLogger(__name__)


class VenueSession:
    """Everything the venue list needs for one browsing session.

    Owns the accumulated venue groups, the pagination controller and the
    enrichment worker. Changing the filters swaps in a fresh collection and
    pagination state; enrichment still running for the old context only
    lands if its organizer is present in the new one.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        filters: EventFilters | None = None,
        tab: str = TAB_ALL,
        page_size: int | None = None,
        enrichment_delay: float | None = None,
        enrich: bool = True,
    ):
        self.client = client
        self.filters = filters or EventFilters()
        self.tab = tab
        self.enrich = enrich
        self.collection = VenueCollection()
        self.pagination = PaginationController(
            self._fetch_page,
            page_size or settings.events_page_size,
            self.filters,
        )
        self.enricher = LocationEnrichmentService(client)
        self.queue = EnrichmentQueue(
            self.enricher.resolve, self._attach_details, delay=enrichment_delay
        )
        self._pending: dict[int, asyncio.Future] = {}

    async def _fetch_page(
        self, page: int, page_size: int, filters: EventFilters
    ) -> EventPage:
        return await fetch_events_page(self.client, page, page_size, filters)

    # ── Loading ──────────────────────────────────────────────

    async def load_next_page(self) -> list[VenueGroup]:
        """Load the next page unconditionally (if any is left).

        Returns the venue groups first seen on this page. Enrichment for them
        is queued, not awaited.
        """
        page = await self.pagination.load_next()
        return self._absorb(page)

    async def on_sentinel_visible(self) -> list[VenueGroup]:
        """Infinite-scroll trigger; ignored while loading or when exhausted."""
        page = await self.pagination.on_sentinel_visible()
        return self._absorb(page)

    def _absorb(self, page: Optional[EventPage]) -> list[VenueGroup]:
        if page is None:
            return []
        new_groups = self.collection.merge(page.events)
        if self.enrich:
            for group in new_groups:
                self._request_enrichment(group)
        return new_groups

    @property
    def has_more(self) -> bool:
        return self.pagination.state.has_more

    # ── Filters ──────────────────────────────────────────────

    def set_filters(self, filters: EventFilters) -> bool:
        """Switch filter context. Returns False if nothing changed."""
        if filters == self.filters:
            return False
        logger.info("Filters changed to %s; restarting pagination", filters)
        self.filters = filters
        self.collection = VenueCollection()
        self.pagination.reset(filters)
        return True

    def set_search(self, search: str) -> bool:
        return self.set_filters(self.filters.model_copy(update={"search": search}))

    def set_tab(self, tab: str) -> None:
        if tab not in TABS:
            raise ValueError(f"Unknown tab: {tab!r} (expected one of {', '.join(TABS)})")
        self.tab = tab

    def visible(self) -> list[VenueGroup]:
        return self.collection.project(self.filters.search, self.tab)

    # ── Enrichment ───────────────────────────────────────────

    def _request_enrichment(self, group: VenueGroup) -> Optional[asyncio.Future]:
        query = group.location_query
        if not query or group.details is not None:
            return None
        organizer_id = group.organizer_id
        self.collection.mark_resolving(organizer_id)
        future = self._pending.get(organizer_id)
        if future is None:
            future = self.queue.submit(organizer_id, query)
            future.add_done_callback(
                lambda f, oid=organizer_id: self._enrichment_done(oid, f)
            )
            self._pending[organizer_id] = future
        return future

    def _enrichment_done(self, organizer_id: int, future: asyncio.Future) -> None:
        if self._pending.get(organizer_id) is future:
            del self._pending[organizer_id]
        if future.cancelled() or future.exception() is not None:
            # Back to unresolved so a later request queues a fresh lookup
            self.collection.attach_details(organizer_id, None)

    def _attach_details(
        self, organizer_id: int, details: Optional[LocationDetails]
    ) -> None:
        self._pending.pop(organizer_id, None)
        self.collection.attach_details(organizer_id, details)

    async def venue_details(self, organizer_id: int) -> Optional[VenueGroup]:
        """A venue group with enrichment, computing it now if it is missing."""
        group = self.collection.get(organizer_id)
        if group is None:
            return None
        future = self._request_enrichment(group)
        if future is None:
            return group
        try:
            await future
        except Exception:
            logger.warning("No details for organizer %d; enrichment failed", organizer_id)
        # The filters may have changed while we waited
        current = self.collection.get(organizer_id)
        return current if current is not None else group

    async def wait_for_enrichment(self) -> None:
        await self.queue.join()

    async def close(self) -> None:
        await self.queue.close()
        for future in self._pending.values():
            future.cancel()
        self._pending.clear()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _print_venues(groups: list[VenueGroup], today: date) -> None:
    for i, group in enumerate(groups, 1):
        organizer = group.organizer
        stats = group.stats(today)
        details = group.details
        print(f"  {i}. {organizer.company_name} (organizer {organizer.id})")
        print(f"     Events:   {stats.total} ({stats.upcoming} upcoming)")
        if stats.next_event_date:
            print(f"     Next:     {stats.next_event_date.isoformat()}")
        print(f"     Address:  {group.location_query or 'N/A'}")
        if details:
            label = "fallback" if details.is_fallback else "resolved"
            print(f"     Rating:   {details.rating} ({label})")
            print(f"     Image:    {details.image}")
            print(f"     About:    {details.description}")
        else:
            print(f"     About:    {organizer.company_description or 'No description available.'}")
        print()


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m storefront.pipeline",
        description="Load event pages and print the venues they belong to.",
    )
    parser.add_argument("--category", help="Only events in this category")
    parser.add_argument("--organizer", type=int, help="Only events by this organizer id")
    parser.add_argument("--search", default="", help="Filter venues by text")
    parser.add_argument("--tab", choices=TABS, default=TAB_ALL)
    parser.add_argument(
        "--pages", type=int, default=1, help="Maximum number of pages to load"
    )
    parser.add_argument("--no-enrich", action="store_true", help="Skip geocoding")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = _parse_args(argv)
    configure_logging()

    filters = EventFilters(
        category=args.category, organizer_id=args.organizer, search=args.search
    )
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
        session = VenueSession(
            client, filters=filters, tab=args.tab, enrich=not args.no_enrich
        )
        try:
            for _ in range(max(1, args.pages)):
                if not session.has_more:
                    break
                try:
                    await session.load_next_page()
                except FetchError as e:
                    print(f"ERROR: {e}")
                    break

            if session.enrich:
                print(f"Enriching {len(session.collection)} venues...")
                await session.wait_for_enrichment()

            venues = session.visible()
            state = session.pagination.state
            print(
                f"\nFound {len(venues)} venues "
                f"({state.fetched_count} events, {state.pages_loaded} pages, "
                f"more available: {state.has_more}):\n"
            )
            _print_venues(venues, date.today())
            summary = session.collection.summary()
            print(
                f"Totals: {summary.total_venues} venues, {summary.total_events} events, "
                f"{summary.featured_venues} featured"
            )
        finally:
            await session.close()


if __name__ == "__main__":
    asyncio.run(main())
