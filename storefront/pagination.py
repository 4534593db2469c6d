"""Infinite-scroll pagination over the events listing."""

import logging
from typing import Awaitable, Callable, Optional

from storefront.errors import FetchError
from storefront.models import EventFilters, EventPage, PageState

logger = logging.getLogger(__name__)

FetchPageFn = Callable[[int, int, EventFilters], Awaitable[EventPage]]


class PaginationController:
    """Decide when to request the next page and track what is left.

    One instance covers one filter context at a time; ``reset`` starts a new
    one. At most one request is in flight, and triggers that arrive while
    it runs are ignored.
    """

    def __init__(
        self,
        fetch_page: FetchPageFn,
        page_size: int,
        filters: EventFilters | None = None,
    ):
        self._fetch_page = fetch_page
        self.page_size = page_size
        self.filters = filters or EventFilters()
        self.state = PageState(page_size=page_size)

    def reset(self, filters: EventFilters | None = None) -> None:
        """Start a fresh pagination session. A request still in flight is
        discarded when it completes."""
        self.filters = filters or EventFilters()
        self.state = PageState(page_size=self.page_size)

    def should_load(self) -> bool:
        return self.state.has_more and not self.state.is_loading

    async def on_sentinel_visible(self) -> Optional[EventPage]:
        """The "load more" sentinel scrolled into view."""
        if not self.should_load():
            logger.debug(
                "Ignoring load trigger (has_more=%s, loading=%s)",
                self.state.has_more,
                self.state.is_loading,
            )
            return None
        return await self.load_next()

    async def load_next(self) -> Optional[EventPage]:
        """Fetch the next page and advance the state.

        Returns None when there is nothing to load, another load is running,
        or the filters changed while this one was in flight (whether the
        request succeeded or not).

        Raises:
            FetchError: the page could not be fetched; state is unchanged so
                the same page is requested next time.
        """
        state = self.state
        if not state.has_more or state.is_loading:
            return None

        page = state.next_page
        filters = self.filters
        state.is_loading = True
        try:
            result = await self._fetch_page(page, state.page_size, filters)
        except FetchError:
            if state is not self.state:
                logger.debug("Dropping failed page %d from a previous filter context", page)
                return None
            logger.warning("Loading page %d failed; will retry the same page", page)
            raise
        finally:
            state.is_loading = False

        if state is not self.state:
            logger.debug("Dropping page %d from a previous filter context", page)
            return None

        self._advance(state, page, result)
        return result

    @staticmethod
    def _advance(state: PageState, page: int, result: EventPage) -> None:
        received = len(result.events)
        state.current_page = page
        state.pages_loaded += 1
        state.fetched_count += received

        if result.total is not None:
            state.total_known = result.total

        if received < state.page_size:
            state.has_more = False
            if state.total_known is None:
                state.total_known = state.fetched_count
        elif state.total_known is not None and state.fetched_count >= state.total_known:
            state.has_more = False
        elif result.has_next is False:
            state.has_more = False

        logger.info(
            "Page %d: %d events, %d fetched so far, has_more=%s",
            page,
            received,
            state.fetched_count,
            state.has_more,
        )
