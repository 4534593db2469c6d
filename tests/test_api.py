"""
Tests for the venues API.

Run with: pytest tests/test_api.py -v
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from storefront.api import SessionStore, app, get_store
from tests.factories import FakeServices, catalogue, event_payload, organizer_payload


@pytest.fixture
def services():
    events = catalogue(5, organizers=2)
    events[0]["organizer"] = organizer_payload(1, "Blue Note", address="131 W 3rd St, New York")
    events[0]["category"] = "jazz"
    return FakeServices(events)


@pytest.fixture
def store(services):
    return SessionStore(services.client(), page_size=2, enrichment_delay=0, enrich=False)


@pytest.fixture
def client(store):
    """Test client whose sessions talk to the fake services."""
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class TestListVenues:
    def test_first_call_loads_page_one(self, client, services):
        response = client.get("/venues")
        assert response.status_code == 200

        data = response.json()
        assert [v["organizer"]["id"] for v in data["venues"]] == [1, 2]
        assert data["state"]["current_page"] == 1
        assert data["state"]["pages_loaded"] == 1
        assert len(services.event_requests) == 1

    def test_second_call_does_not_refetch(self, client, services):
        client.get("/venues")
        client.get("/venues")

        assert len(services.event_requests) == 1

    def test_venue_payload(self, client):
        venue = client.get("/venues").json()["venues"][0]

        assert venue["organizer"]["company_name"] == "Blue Note"
        assert venue["event_count"] == 1
        assert venue["event_ids"] == [1]
        assert venue["details"] is None
        assert venue["enrichment"] == "unresolved"
        assert venue["stats"]["total"] == 1
        assert venue["display_event"]["id"] == 1
        assert venue["directions_url"].startswith("https://www.google.com/maps/search/")

    def test_unknown_tab(self, client):
        response = client.get("/venues", params={"tab": "nearby"})
        assert response.status_code == 400

    def test_backend_failure_is_502(self, client, services):
        services.fail_events = True

        response = client.get("/venues")

        assert response.status_code == 502
        assert "retry" in response.json()["detail"]


class TestLoadMore:
    def test_scroll_to_end(self, client, services):
        client.get("/venues")

        for _ in range(5):
            response = client.post("/venues/load-more")
            assert response.status_code == 200

        state = client.get("/venues/state").json()
        assert state["has_more"] is False
        assert state["fetched_count"] == 5
        assert [r.url.params["page"] for r in services.event_requests] == ["1", "2", "3"]

    def test_trending_tab(self, client):
        client.get("/venues")
        client.post("/venues/load-more")

        venues = client.get("/venues", params={"tab": "trending"}).json()["venues"]

        # organizer 2 has events 2 and 4, organizer 1 has 1 and 3
        assert [v["event_count"] for v in venues] == [2, 2]
        assert [v["organizer"]["id"] for v in venues] == [1, 2]

    def test_popular_tab(self, client):
        client.get("/venues")
        client.post("/venues/load-more")
        client.post("/venues/load-more")

        venues = client.get("/venues", params={"tab": "popular"}).json()["venues"]

        # organizer 1 has events 1, 3 and 5
        assert [v["organizer"]["id"] for v in venues] == [1, 2]
        assert [v["event_count"] for v in venues] == [3, 2]

    def test_summary_counts_loaded_venues(self, client):
        client.get("/venues")
        client.post("/venues/load-more")

        summary = client.get("/venues", params={"search": ""}).json()["summary"]

        assert summary == {"total_venues": 2, "total_events": 4, "featured_venues": 0}


class TestFilters:
    def test_filter_change_resets(self, client, services):
        client.get("/venues")
        client.post("/venues/load-more")

        response = client.put("/venues/filters", json={"category": "jazz"})
        assert response.status_code == 200

        data = response.json()
        assert data["changed"] is True
        assert data["state"]["current_page"] == 1
        assert data["state"]["filters"]["category"] == "jazz"

        venues = client.get("/venues").json()["venues"]
        assert [v["organizer"]["id"] for v in venues] == [1]
        assert services.event_requests[-1].url.params["category"] == "jazz"

    def test_search(self, client):
        client.put("/venues/filters", json={"search": "blue"})

        venues = client.get("/venues").json()["venues"]

        assert [v["organizer"]["company_name"] for v in venues] == ["Blue Note"]

    def test_search_query_param(self, client, services):
        client.get("/venues")

        data = client.get("/venues", params={"search": "BLUE"}).json()

        assert [v["organizer"]["id"] for v in data["venues"]] == [1]
        assert data["state"]["filters"]["search"] == "BLUE"
        assert len(services.event_requests) == 2

    def test_unchanged_filters(self, client):
        response = client.put("/venues/filters", json={"tab": "trending"})

        assert response.json()["changed"] is False
        assert response.json()["state"]["tab"] == "trending"

    def test_bad_tab(self, client):
        response = client.put("/venues/filters", json={"tab": "nearby"})
        assert response.status_code == 400


class TestVenueDetail:
    def test_details_enriched_on_demand(self, client, services):
        client.get("/venues")

        venue = client.get("/venues/1").json()

        assert venue["details"]["source"] == "fallback"
        assert venue["enrichment"] == "fell_back"
        assert 3.5 <= venue["details"]["rating"] <= 5.0
        assert services.geocoder_requests[0].url.params["q"] == "131 W 3rd St, New York"

    def test_venue_without_location_has_no_details(self, client, services):
        client.get("/venues")

        venue = client.get("/venues/2").json()

        assert venue["details"] is None
        assert services.geocoder_requests == []

    def test_unknown_venue(self, client):
        client.get("/venues")

        assert client.get("/venues/999").status_code == 404


def test_event_without_organizer_not_listed():
    services = FakeServices([event_payload(1, None)])
    store = SessionStore(services.client(), page_size=2, enrich=False)
    app.dependency_overrides[get_store] = lambda: store
    try:
        with TestClient(app) as client:
            data = client.get("/venues").json()
    finally:
        app.dependency_overrides.clear()

    assert data["venues"] == []
    assert data["state"]["has_more"] is False


class TestSessions:
    def test_filters_isolated_per_session(self, client, services):
        alice = {"X-Session-Id": "alice"}
        bob = {"X-Session-Id": "bob"}
        client.get("/venues", headers=alice)
        client.get("/venues", headers=bob)
        client.post("/venues/load-more", headers=bob)

        client.put("/venues/filters", json={"category": "jazz"}, headers=alice)

        alice_state = client.get("/venues/state", headers=alice).json()
        bob_data = client.get("/venues", headers=bob).json()
        assert alice_state["filters"]["category"] == "jazz"
        assert bob_data["state"]["filters"]["category"] is None
        assert bob_data["state"]["pages_loaded"] == 2
        assert [v["organizer"]["id"] for v in bob_data["venues"]] == [1, 2]

    def test_sessions_created_on_first_request(self, client, store):
        client.get("/venues/state", headers={"X-Session-Id": "tab-1"})
        client.get("/venues/state")

        assert "tab-1" in store
        assert "default" in store
        assert len(store) == 2


def test_least_recently_used_session_closed():
    store = SessionStore(FakeServices().client(), max_sessions=2, enrich=False)

    async def run():
        first = await store.get("a")
        await store.get("b")
        assert await store.get("a") is first
        await store.get("c")

    asyncio.run(run())

    assert "a" in store
    assert "b" not in store
    assert "c" in store
