"""Group events into venues keyed by organizer."""

import logging
from typing import Iterable, Optional

from storefront.models import (
    EnrichmentSource,
    EnrichmentState,
    EventRecord,
    LocationDetails,
    VenueGroup,
    VenueListSummary,
)
from storefront.projector import project

logger = logging.getLogger(__name__)


def merge_events(
    groups: Iterable[VenueGroup], events: Iterable[EventRecord]
) -> list[VenueGroup]:
    """Fold ``events`` into ``groups`` and return the new collection.

    - Events without an organizer are skipped.
    - A group is created for each unseen organizer and appended at the end.
    - An event already present in its group (same id) is not added again,
      so merging the same page twice is a no-op.

    Neither argument is modified.
    """
    merged = [g.model_copy(update={"events": list(g.events)}) for g in groups]
    by_id = {g.organizer_id: g for g in merged}

    for event in events:
        if event.organizer is None:
            continue
        group = by_id.get(event.organizer.id)
        if group is None:
            group = VenueGroup(organizer=event.organizer)
            merged.append(group)
            by_id[group.organizer_id] = group
        if not group.has_event(event.id):
            group.events.append(event)

    return merged


class VenueCollection:
    """The venue groups accumulated for one filter context.

    A new collection is created whenever the filters change; this one is
    never cleared in place.
    """

    def __init__(self, groups: Iterable[VenueGroup] = ()):
        self._groups: list[VenueGroup] = list(groups)

    @property
    def groups(self) -> list[VenueGroup]:
        return list(self._groups)

    def __len__(self) -> int:
        return len(self._groups)

    def __contains__(self, organizer_id: int) -> bool:
        return self.get(organizer_id) is not None

    def get(self, organizer_id: int) -> Optional[VenueGroup]:
        for group in self._groups:
            if group.organizer_id == organizer_id:
                return group
        return None

    def merge(self, events: Iterable[EventRecord]) -> list[VenueGroup]:
        """Merge a page of events. Returns the groups created by this page."""
        known = {g.organizer_id for g in self._groups}
        self._groups = merge_events(self._groups, events)
        return [g for g in self._groups if g.organizer_id not in known]

    def mark_resolving(self, organizer_id: int) -> bool:
        group = self.get(organizer_id)
        if group is None or group.details is not None:
            return False
        group.enrichment = EnrichmentState.RESOLVING
        return True

    def attach_details(
        self, organizer_id: int, details: Optional[LocationDetails]
    ) -> bool:
        """Attach enrichment to a group if it still exists.

        Results for organizers no longer in the collection (the filters
        changed while the lookup ran) are dropped.
        """
        group = self.get(organizer_id)
        if group is None:
            logger.debug("Discarding stale enrichment for organizer %d", organizer_id)
            return False

        if details is None:
            group.enrichment = EnrichmentState.UNRESOLVED
            return False

        group.details = details
        group.enrichment = (
            EnrichmentState.FELL_BACK
            if details.source == EnrichmentSource.FALLBACK
            else EnrichmentState.RESOLVED
        )
        return True

    def project(self, search: str = "", tab: str = "all") -> list[VenueGroup]:
        return project(self._groups, search, tab)

    def summary(self) -> VenueListSummary:
        """Totals over every group loaded so far, ignoring search and tab."""
        return VenueListSummary(
            total_venues=len(self._groups),
            total_events=sum(len(g.events) for g in self._groups),
            featured_venues=sum(1 for g in self._groups if g.is_popular),
        )
