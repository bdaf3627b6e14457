"""
Event Aggregator - merge event lists from parallel queries or sources.

The first occurrence of an id wins; later duplicates are discarded, not
merged. Output is ordered by ledger, most recent first. Events in the same
ledger keep their input order.
"""

import logging
from typing import Iterable, Optional

from soroban_activity.models import ActivityEvent


logger = logging.getLogger(__name__)


def dedupe_events(*event_lists: Iterable[ActivityEvent]) -> list[ActivityEvent]:
    """Flatten in order, keeping the first event seen for each id."""
    seen: dict[str, ActivityEvent] = {}
    duplicates = 0
    for events in event_lists:
        for event in events:
            if event.id in seen:
                duplicates += 1
                continue
            seen[event.id] = event

    if duplicates:
        logger.debug(f"[aggregator] Dropped {duplicates} duplicate events")
    return list(seen.values())


def sort_by_ledger(events: Iterable[ActivityEvent]) -> list[ActivityEvent]:
    return sorted(events, key=lambda e: e.ledger, reverse=True)


def merge_events(
    *event_lists: Iterable[ActivityEvent],
    limit: Optional[int] = None,
) -> list[ActivityEvent]:
    """
    Dedup, sort by ledger descending and truncate.

    Args:
        *event_lists: Event lists in priority order
        limit: Maximum number of events to return (None for all)

    Returns:
        Merged events, idempotent under re-merging
    """
    merged = sort_by_ledger(dedupe_events(*event_lists))
    if limit is not None:
        merged = merged[:max(limit, 0)]
    return merged
