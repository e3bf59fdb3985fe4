"""Pure operations over lists of field changes.

Shared by the in-memory tracker and the store-backed service so both give
the same answers for the same records.
"""

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Union

from structedit.models import ChangeFilter, ChangeStatistics, ChangeType, FieldChange

FilterLike = Union[ChangeFilter, dict, None]


def as_filter(change_filter: FilterLike) -> ChangeFilter:
    """Coerce None or a plain dict into a :class:`ChangeFilter`."""
    if change_filter is None:
        return ChangeFilter()
    if isinstance(change_filter, ChangeFilter):
        return change_filter
    return ChangeFilter.model_validate(change_filter)


def sort_newest_first(changes: Iterable[FieldChange]) -> list[FieldChange]:
    return sorted(changes, key=lambda change: change.occurred_at, reverse=True)


def sort_oldest_first(changes: Iterable[FieldChange]) -> list[FieldChange]:
    return sorted(changes, key=lambda change: change.occurred_at)


def filter_changes(changes: Iterable[FieldChange], change_filter: FilterLike = None) -> list[FieldChange]:
    """Changes matching every predicate set on the filter, newest first."""
    predicate = as_filter(change_filter)
    return sort_newest_first(change for change in changes if predicate.matches(change))


def latest_timestamp(
    changes: Iterable[FieldChange], change_type: Optional[ChangeType] = None
) -> Optional[str]:
    """Timestamp of the most recent change, optionally of one type."""
    latest: Optional[FieldChange] = None
    for change in changes:
        if change_type is not None and change.change_type != change_type:
            continue
        if latest is None or change.occurred_at > latest.occurred_at:
            latest = change
    return latest.timestamp if latest else None


def compute_statistics(
    changes: Iterable[FieldChange], last_update: Optional[str] = None
) -> ChangeStatistics:
    """Counts by type and section, unacknowledged count, last update.

    ``last_update`` falls back to the newest change's timestamp.
    """
    changes = list(changes)
    by_type = Counter(change.change_type.value for change in changes)
    by_section = Counter(change.section_id for change in changes)
    return ChangeStatistics(
        total=len(changes),
        unacknowledged=sum(1 for change in changes if not change.acknowledged),
        by_type=dict(by_type),
        by_section=dict(by_section),
        last_update=last_update or latest_timestamp(changes),
    )


def prune_changes(
    changes: Iterable[FieldChange],
    max_age_days: int,
    now: Optional[datetime] = None,
) -> list[FieldChange]:
    """Drop changes that are both acknowledged and older than ``max_age_days``.

    Unacknowledged changes are kept whatever their age. Order is preserved.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=max_age_days)
    return [
        change
        for change in changes
        if not change.acknowledged or change.occurred_at >= cutoff
    ]
