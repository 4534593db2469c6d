from datetime import date
from enum import Enum
from typing import Optional
from urllib.parse import quote

from pydantic import AliasChoices, BaseModel, Field, field_validator

GOOGLE_MAPS_SEARCH_URL = "https://www.google.com/maps/search/?api=1&query="

# Card badges on the storefront venue list
POPULAR_EVENT_COUNT = 5
ACTIVE_UPCOMING_COUNT = 3


class EnrichmentSource(str, Enum):
    """Where a venue's LocationDetails came from."""

    RESOLVED = "resolved"
    """Built from a geocoder match."""

    FALLBACK = "fallback"
    """Derived locally because the geocoder had nothing (or failed)."""


class EnrichmentState(str, Enum):
    """Lifecycle of a venue group's enrichment."""

    UNRESOLVED = "unresolved"
    """No enrichment yet; render raw organizer fields."""

    RESOLVING = "resolving"
    """Queued or in progress."""

    RESOLVED = "resolved"
    """Details attached from a geocoder match."""

    FELL_BACK = "fell_back"
    """Details attached from the deterministic fallback (lower confidence)."""


class Organizer(BaseModel):
    """The organizer an event belongs to. Doubles as the venue identity."""

    id: int
    company_name: str
    company_logo: Optional[str] = None
    company_description: Optional[str] = None
    address: Optional[str] = None
    website: Optional[str] = None
    social_media: dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("social_media", "social_media_links"),
    )

    model_config = {"frozen": True}

    @field_validator("social_media", mode="before")
    @classmethod
    def normalize_social_media(cls, v):
        """null -> no links; unset platforms (null or "") are dropped."""
        if v is None:
            return {}
        if isinstance(v, dict):
            return {k: link for k, link in v.items() if link}
        return v


class EventRecord(BaseModel):
    """An event as returned by the backend listing endpoint."""

    id: int
    name: str
    date: date
    start_time: Optional[str] = Field(None, description="HH:MM")
    end_time: Optional[str] = Field(None, description="HH:MM")
    location: str = ""
    image: Optional[str] = None
    category: Optional[str] = None
    organizer: Optional[Organizer] = None

    model_config = {"frozen": True}

    @field_validator("location", mode="before")
    @classmethod
    def normalize_location(cls, v):
        return "" if v is None else v


class LocationDetails(BaseModel):
    """Enrichment attached to a venue group."""

    description: str
    image: str
    rating: float = Field(..., ge=0, le=5)
    source: EnrichmentSource

    @property
    def is_fallback(self) -> bool:
        return self.source == EnrichmentSource.FALLBACK


class VenueStats(BaseModel):
    total: int
    upcoming: int
    next_event_date: Optional[date] = None
    popular: bool = False
    active: bool = False


class VenueListSummary(BaseModel):
    """Headline numbers for the whole venue list."""

    total_venues: int
    total_events: int
    featured_venues: int


class VenueGroup(BaseModel):
    """One organizer plus every event seen for it in the current session."""

    organizer: Organizer
    events: list[EventRecord] = Field(default_factory=list)
    details: Optional[LocationDetails] = None
    enrichment: EnrichmentState = EnrichmentState.UNRESOLVED

    @property
    def organizer_id(self) -> int:
        return self.organizer.id

    @property
    def location_query(self) -> str:
        """Free-text address used for geocoding; empty when nothing is known."""
        if self.organizer.address and self.organizer.address.strip():
            return self.organizer.address.strip()
        for event in self.events:
            if event.location and event.location.strip():
                return event.location.strip()
        return ""

    @property
    def directions_url(self) -> Optional[str]:
        query = self.location_query
        if not query:
            return None
        return GOOGLE_MAPS_SEARCH_URL + quote(query, safe="")

    @property
    def is_popular(self) -> bool:
        return len(self.events) > POPULAR_EVENT_COUNT

    def has_event(self, event_id: int) -> bool:
        return any(e.id == event_id for e in self.events)

    def display_event(self, today: date) -> Optional[EventRecord]:
        """Next upcoming event, or the most recent one if none are upcoming."""
        if not self.events:
            return None
        ordered = sorted(self.events, key=lambda e: e.date)
        for event in ordered:
            if event.date >= today:
                return event
        return ordered[-1]

    def stats(self, today: date) -> VenueStats:
        upcoming = [e for e in self.events if e.date >= today]
        next_date = min((e.date for e in upcoming), default=None)
        return VenueStats(
            total=len(self.events),
            upcoming=len(upcoming),
            next_event_date=next_date,
            popular=self.is_popular,
            active=len(upcoming) > ACTIVE_UPCOMING_COUNT,
        )


class EventFilters(BaseModel):
    """Server-side filters plus the client-side search term.

    Any change here starts a new pagination session.
    """

    category: Optional[str] = None
    organizer_id: Optional[int] = None
    search: str = ""

    model_config = {"frozen": True}


class EventPage(BaseModel):
    """One page of the events listing."""

    events: list[EventRecord] = Field(default_factory=list)
    total: Optional[int] = None
    has_next: Optional[bool] = None


class PageState(BaseModel):
    """Pagination state for one filter context."""

    current_page: int = Field(1, ge=1)
    page_size: int = Field(..., ge=1)
    pages_loaded: int = 0
    fetched_count: int = 0
    total_known: Optional[int] = None
    has_more: bool = True
    is_loading: bool = False

    @property
    def next_page(self) -> int:
        return self.current_page + 1 if self.pages_loaded else self.current_page
