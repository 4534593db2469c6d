"""
Tests for fetching pages from the events backend.
"""

import asyncio
from datetime import date

import httpx
import pytest

from storefront.errors import FetchError, NetworkError, PayloadError
from storefront.events_client import build_params, fetch_events_page, parse_events_page
from storefront.models import EventFilters
from tests.factories import FakeServices, catalogue, event_payload, organizer_payload


def _fetch(handler, page=1, page_size=12, filters=None):
    async def run():
        transport = httpx.MockTransport(handler)
        async with httpx.AsyncClient(transport=transport) as client:
            return await fetch_events_page(client, page, page_size, filters)

    return asyncio.run(run())


class TestBuildParams:
    def test_page_only(self):
        assert build_params(2, 12, EventFilters()) == {"page": 2, "per_page": 12}

    def test_filters_included_search_excluded(self):
        filters = EventFilters(category="music", organizer_id=0, search="jazz")

        assert build_params(1, 20, filters) == {
            "page": 1,
            "per_page": 20,
            "category": "music",
            "organizer": 0,
        }


class TestParseEventsPage:
    def test_top_level_total(self):
        page = parse_events_page({"events": [event_payload(1)], "total": 40})

        assert page.total == 40
        assert page.has_next is None
        assert page.events[0].date == date(2030, 1, 1)
        assert page.events[0].organizer.id == 1

    def test_pagination_object(self):
        page = parse_events_page(
            {"events": [], "pagination": {"total": 3, "has_next": False, "current_page": 2}}
        )

        assert page.total == 3
        assert page.has_next is False

    def test_missing_events_list(self):
        with pytest.raises(PayloadError):
            parse_events_page({"items": []})


class TestFetchEventsPage:
    def test_requests_listing_with_query(self):
        services = FakeServices(catalogue(30))

        page = _fetch(services.handle, page=2, page_size=12, filters=EventFilters(category="x"))

        request = services.event_requests[0]
        assert request.url.path == "/events"
        assert request.url.params["page"] == "2"
        assert request.url.params["per_page"] == "12"
        assert request.url.params["category"] == "x"
        assert page.events == []
        assert page.total == 0

    def test_returns_events_and_total(self):
        services = FakeServices(catalogue(30))

        page = _fetch(services.handle, page=3)

        assert [e.id for e in page.events] == [25, 26, 27, 28, 29, 30]
        assert page.total == 30

    def test_http_error_raises_network_error(self):
        services = FakeServices(catalogue(5))
        services.fail_events = True

        with pytest.raises(NetworkError) as exc_info:
            _fetch(services.handle, page=4)

        assert exc_info.value.page == 4
        assert exc_info.value.status_code == 500

    def test_transport_error_raises_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NetworkError):
            _fetch(handler)

    def test_invalid_json_raises_payload_error(self):
        def handler(request):
            return httpx.Response(200, text="<html>maintenance</html>")

        with pytest.raises(PayloadError):
            _fetch(handler)

    def test_invalid_event_raises_payload_error(self):
        def handler(request):
            return httpx.Response(200, json={"events": [{"id": "not-a-number"}]})

        with pytest.raises(FetchError):
            _fetch(handler)


class TestOptionalFields:
    def test_null_social_media_and_location(self):
        page = parse_events_page(
            {
                "events": [
                    event_payload(1, organizer=organizer_payload(1, social_media=None)),
                    event_payload(2, 2, location=None),
                ]
            }
        )

        assert [e.id for e in page.events] == [1, 2]
        assert page.events[0].organizer.social_media == {}
        assert page.events[1].location == ""

    def test_social_media_links_key(self):
        organizer = organizer_payload(
            1, social_media_links={"twitter": "https://twitter.com/venue", "facebook": None}
        )

        page = parse_events_page({"events": [event_payload(1, organizer=organizer)]})

        assert page.events[0].organizer.social_media == {"twitter": "https://twitter.com/venue"}
