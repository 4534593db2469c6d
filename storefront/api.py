"""FastAPI service serving the storefront's venue list."""

import logging
from collections import OrderedDict
from contextlib import asynccontextmanager
from datetime import date
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from storefront.config import configure_logging, settings
from storefront.errors import FetchError
from storefront.models import EventFilters, VenueGroup
from storefront.pipeline import VenueSession
from storefront.projector import TABS

logger = logging.getLogger(__name__)


class SessionStore:
    """Browsing sessions keyed by the client's ``X-Session-Id`` header.

    Each id gets its own filters, pagination state and venue groups, so one
    client changing filters never resets another. Sessions are created on
    first use; past ``max_sessions`` the least recently used one is closed.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        max_sessions: int | None = None,
        **session_options,
    ):
        self.client = client
        self.max_sessions = max_sessions or settings.max_sessions
        self._session_options = session_options
        self._sessions: OrderedDict[str, VenueSession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    async def get(self, session_id: str) -> VenueSession:
        session = self._sessions.get(session_id)
        if session is not None:
            self._sessions.move_to_end(session_id)
            return session

        logger.info("New browsing session %s", session_id)
        session = VenueSession(self.client, **self._session_options)
        self._sessions[session_id] = session
        while len(self._sessions) > self.max_sessions:
            expired_id, expired = self._sessions.popitem(last=False)
            logger.info("Closing idle browsing session %s", expired_id)
            await expired.close()
        return session

    async def close(self) -> None:
        for session in self._sessions.values():
            await session.close()
        self._sessions.clear()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    app.state.sessions = SessionStore(client)
    yield
    await app.state.sessions.close()
    await client.aclose()


app = FastAPI(title="Storefront Venues API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_store(request: Request) -> SessionStore:
    return request.app.state.sessions


async def get_session(
    session_id: str = Header("default", alias="X-Session-Id"),
    store: SessionStore = Depends(get_store),
) -> VenueSession:
    return await store.get(session_id)


class FiltersUpdate(BaseModel):
    category: Optional[str] = None
    organizer_id: Optional[int] = None
    search: str = ""
    tab: Optional[str] = None


def _serialize_group(group: VenueGroup, today: date) -> dict:
    """Venue card payload: organizer fields, stats and enrichment."""
    display_event = group.display_event(today)
    return {
        "organizer": group.organizer.model_dump(),
        "event_count": len(group.events),
        "event_ids": [e.id for e in group.events],
        "stats": group.stats(today).model_dump(mode="json"),
        "display_event": display_event.model_dump(mode="json") if display_event else None,
        "details": group.details.model_dump(mode="json") if group.details else None,
        "enrichment": group.enrichment.value,
        "directions_url": group.directions_url,
    }


def _serialize_state(session: VenueSession) -> dict:
    return {
        **session.pagination.state.model_dump(),
        "filters": session.filters.model_dump(),
        "tab": session.tab,
    }


async def _load(session: VenueSession, *, sentinel: bool) -> list[VenueGroup]:
    try:
        if sentinel:
            return await session.on_sentinel_visible()
        return await session.load_next_page()
    except FetchError as e:
        raise HTTPException(status_code=502, detail=f"{e} (retry to load the same page)")


# ── Venues ──────────────────────────────────────────────────


@app.get("/venues")
async def list_venues(
    search: Optional[str] = Query(None, description="Text to match venues against"),
    tab: Optional[str] = Query(None, description="all, trending or popular"),
    session: VenueSession = Depends(get_session),
):
    """Venues for the current filters. The first call loads page 1.

    A changed ``search`` starts a new filter context, same as PUT /venues/filters.
    """
    if tab is not None and tab not in TABS:
        raise HTTPException(status_code=400, detail=f"Unknown tab: {tab}")
    if search is not None:
        session.set_search(search)

    state = session.pagination.state
    if state.pages_loaded == 0 and state.has_more:
        await _load(session, sentinel=False)

    today = date.today()
    groups = session.collection.project(session.filters.search, tab or session.tab)
    return {
        "venues": [_serialize_group(g, today) for g in groups],
        "summary": session.collection.summary().model_dump(),
        "state": _serialize_state(session),
    }


@app.post("/venues/load-more")
async def load_more(session: VenueSession = Depends(get_session)):
    """Infinite-scroll trigger. Ignored while a page is loading or none are left."""
    new_groups = await _load(session, sentinel=True)
    return {
        "new_venues": [g.organizer_id for g in new_groups],
        "state": _serialize_state(session),
    }


@app.put("/venues/filters")
async def update_filters(
    update: FiltersUpdate, session: VenueSession = Depends(get_session)
):
    """Switch filter context; restarts pagination and loads page 1."""
    if update.tab is not None:
        try:
            session.set_tab(update.tab)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    filters = EventFilters(
        category=update.category,
        organizer_id=update.organizer_id,
        search=update.search,
    )
    changed = session.set_filters(filters)
    if changed:
        await _load(session, sentinel=False)
    return {"changed": changed, "state": _serialize_state(session)}


@app.get("/venues/state")
async def get_state(session: VenueSession = Depends(get_session)):
    return _serialize_state(session)


@app.get("/venues/{organizer_id}")
async def get_venue(organizer_id: int, session: VenueSession = Depends(get_session)):
    """A single venue, enriched on demand if it has no details yet."""
    group = await session.venue_details(organizer_id)
    if group is None:
        raise HTTPException(status_code=404, detail="Venue not found")
    return _serialize_group(group, date.today())
