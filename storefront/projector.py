"""Search and tab filtering over accumulated venue groups."""

from typing import Iterable

from storefront.models import VenueGroup

TAB_ALL = "all"
TAB_TRENDING = "trending"
TAB_POPULAR = "popular"
TABS = (TAB_ALL, TAB_TRENDING, TAB_POPULAR)

# Tabs ordered by event count, most first
RANKED_TABS = (TAB_TRENDING, TAB_POPULAR)


def _searchable_fields(group: VenueGroup) -> list[str]:
    organizer = group.organizer
    fields = [
        organizer.company_name,
        organizer.company_description,
        organizer.address,
        group.details.description if group.details else None,
    ]
    return [f for f in fields if f]


def matches(group: VenueGroup, search: str) -> bool:
    """Case-insensitive substring match on name, description, address, details."""
    term = search.strip().lower()
    if not term:
        return True
    return any(term in field.lower() for field in _searchable_fields(group))


def project(
    groups: Iterable[VenueGroup], search: str = "", tab: str = TAB_ALL
) -> list[VenueGroup]:
    """Groups to display for the current search term and tab.

    The trending and popular tabs order by event count, most first;
    ``sorted`` is stable so ties keep their arrival order.
    """
    visible = [g for g in groups if matches(g, search)]
    if tab in RANKED_TABS:
        visible = sorted(visible, key=lambda g: len(g.events), reverse=True)
    return visible
