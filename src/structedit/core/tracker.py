"""Per-report change tracker.

Keeps the authoritative in-memory log of field changes for one report,
notifies subscribers synchronously, and mirrors the log to the metadata store
in the background. A failed background write is logged and handed to the
``on_persist_error`` hook; it never reaches the caller that made the change,
and never rolls back the in-memory log.

Trackers are not thread-safe. Confine each tracker (one per report id, see
:class:`TrackerRegistry`) to a single thread or event loop.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from structedit.config import settings
from structedit.exceptions import ChangeNotFoundError, PersistenceError, RevertNotImplementedError
from structedit.models import (
    ChangeMetadata,
    ChangeTrackingMetadata,
    ChangeType,
    FieldChange,
    ValidationStatus,
)
from structedit.utils.logging import get_logger
from structedit.utils.loop import run_sync

from .changes import FilterLike, filter_changes, latest_timestamp, sort_newest_first, sort_oldest_first
from .service import ChangeTrackingService, generate_change_id, utc_now

logger = get_logger(__name__)

ChangeListener = Callable[[FieldChange], None]
PersistErrorHook = Callable[[Exception], None]


class ChangeTracker:
    """In-memory change log for one report, with optional persistence.

    Args:
        report_id: Report whose log this is; persistence is skipped without one.
        service: Service wrapping the metadata store.
        persistence_enabled: Mirror the log to the store after each mutation.
        clock: Returns the current aware datetime; used for timestamps.
        on_persist_error: Called with the error when a background write fails.
    """

    def __init__(
        self,
        report_id: Optional[str] = None,
        service: Optional[ChangeTrackingService] = None,
        persistence_enabled: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
        on_persist_error: Optional[PersistErrorHook] = None,
    ):
        self.report_id = report_id
        self.service = service
        self.persistence_enabled = persistence_enabled and service is not None
        self.clock = clock or utc_now
        self.on_persist_error = on_persist_error

        self._changes: dict[str, FieldChange] = {}
        self._listeners: list[ChangeListener] = []
        self._pending: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._changes)

    def __contains__(self, change_id: str) -> bool:
        return change_id in self._changes

    @property
    def changes(self) -> list[FieldChange]:
        """All changes in insertion order."""
        return list(self._changes.values())

    def get_change(self, change_id: str) -> Optional[FieldChange]:
        return self._changes.get(change_id)

    # Recording

    def track_field_change(
        self,
        section_id: str,
        field_path: str,
        previous_value: Any,
        new_value: Any,
        change_type: ChangeType,
        *,
        confidence: Optional[float] = None,
        source_reference: Optional[str] = None,
        user_id: Optional[str] = None,
        metadata: Optional[ChangeMetadata] = None,
    ) -> str:
        """Record an accepted mutation and return its change id."""
        now = self.clock()
        change = FieldChange(
            id=self._new_change_id(now),
            section_id=str(section_id),
            field_path=field_path,
            previous_value=previous_value,
            new_value=new_value,
            change_type=change_type,
            confidence=confidence,
            source_reference=source_reference,
            timestamp=now.isoformat(),
            acknowledged=False,
            user_id=user_id,
            metadata=metadata,
        )

        self._changes[change.id] = change
        self._notify_listeners(change)
        self._schedule_persist()
        return change.id

    def _new_change_id(self, now: datetime) -> str:
        change_id = generate_change_id(now)
        while change_id in self._changes:
            change_id = generate_change_id(now)
        return change_id

    # Listeners

    def add_change_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_change_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify_listeners(self, change: FieldChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("Error in change listener for change %s", change.id)

    # Queries

    def get_changes_for_section(self, section_id: str) -> list[FieldChange]:
        return sort_newest_first(
            change for change in self._changes.values() if change.section_id == section_id
        )

    def get_unacknowledged_changes(self) -> list[FieldChange]:
        return sort_newest_first(
            change for change in self._changes.values() if not change.acknowledged
        )

    def get_filtered_changes(self, change_filter: FilterLike = None) -> list[FieldChange]:
        return filter_changes(self._changes.values(), change_filter)

    def get_change_history(self, field_path: str, section_id: str) -> list[FieldChange]:
        """Changes to one field of one section, oldest first."""
        return sort_oldest_first(
            change
            for change in self._changes.values()
            if change.field_path == field_path and change.section_id == section_id
        )

    def get_last_ai_update(self) -> Optional[str]:
        return latest_timestamp(self._changes.values(), ChangeType.AI_UPDATE)

    # Review

    def acknowledge_change(self, change_id: str) -> bool:
        """Mark one change acknowledged. Unknown ids are ignored."""
        return self.acknowledge_multiple_changes([change_id])

    def acknowledge_multiple_changes(self, change_ids: Iterable[str]) -> bool:
        """Mark changes acknowledged; persists only if a record changed."""
        touched = False
        for change_id in change_ids:
            change = self._changes.get(change_id)
            if change is not None and not change.acknowledged:
                self._changes[change_id] = change.acknowledge()
                touched = True

        if touched:
            self._schedule_persist()
        return touched

    def revert_change(self, change_id: str) -> None:
        """Revert a change.

        Raises:
            ChangeNotFoundError: if no change has this id.
            RevertNotImplementedError: always, for known changes.
        """
        if change_id not in self._changes:
            raise ChangeNotFoundError(f"Change {change_id} not found")
        # TODO: write previous_value back through the resolver and record a
        # compensating change once section documents are reachable from here.
        raise RevertNotImplementedError("Revert functionality not yet implemented")

    def clear_changes(self) -> None:
        self._changes.clear()

    # Persistence

    def build_metadata(self) -> ChangeTrackingMetadata:
        """Snapshot of the log in persisted form."""
        return ChangeTrackingMetadata(
            field_changes=self.changes,
            last_ai_update=self.get_last_ai_update(),
            validation_status=ValidationStatus.VALID,
        )

    def _schedule_persist(self) -> Optional[asyncio.Task]:
        if not self.persistence_enabled or not self.report_id:
            return None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop; block on the shared background loop.
            run_sync(self.persist_changes())
            return None

        task = loop.create_task(self.persist_changes())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def wait_for_persistence(self) -> None:
        """Wait for background writes started so far."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def persist_changes(self) -> bool:
        """Write the whole log to the store. Never raises."""
        if not self.persistence_enabled or not self.report_id:
            return False

        try:
            saved = await self.service.save_change_metadata(self.report_id, self.build_metadata())
            if not saved:
                raise PersistenceError(f"Change metadata for report {self.report_id} was not saved")
        except Exception as exc:
            logger.error("Failed to persist changes for report %s: %s", self.report_id, exc)
            self._report_persist_error(exc)
            return False

        logger.debug(
            "Persisted %d changes for report %s (%d unacknowledged)",
            len(self._changes),
            self.report_id,
            len(self.get_unacknowledged_changes()),
        )
        return True

    def _report_persist_error(self, exc: Exception) -> None:
        if self.on_persist_error is None:
            return
        try:
            self.on_persist_error(exc)
        except Exception:
            logger.exception("Error in persistence failure hook")

    async def load_changes(self, report_id: str) -> None:
        """Replace the in-memory log with the stored log of ``report_id``."""
        self.report_id = report_id
        self._changes.clear()

        if not self.persistence_enabled:
            return

        stored = await self.service.load_change_metadata(report_id)
        for change in stored.field_changes:
            self._changes[change.id] = change
        logger.debug("Loaded %d changes for report %s", len(self._changes), report_id)


class TrackerRegistry:
    """One tracker per report id, created on first use.

    Owned by the application and passed to whatever needs trackers; call
    :meth:`release` when a report session ends.
    """

    def __init__(
        self,
        service: Optional[ChangeTrackingService] = None,
        persistence_enabled: Optional[bool] = None,
        tracker_factory: Optional[Callable[[str], ChangeTracker]] = None,
    ):
        if persistence_enabled is None:
            persistence_enabled = settings.persist_changes
        self.service = service
        self.persistence_enabled = persistence_enabled
        self._factory = tracker_factory or self._default_factory
        self._trackers: dict[str, ChangeTracker] = {}

    def _default_factory(self, report_id: str) -> ChangeTracker:
        return ChangeTracker(
            report_id=report_id,
            service=self.service,
            persistence_enabled=self.persistence_enabled,
        )

    def get(self, report_id: str) -> ChangeTracker:
        """Return the tracker for ``report_id``, creating it if needed."""
        tracker = self._trackers.get(report_id)
        if tracker is None:
            tracker = self._factory(report_id)
            self._trackers[report_id] = tracker
        return tracker

    async def open(self, report_id: str) -> ChangeTracker:
        """Get the tracker for ``report_id`` and load its stored log if new."""
        is_new = report_id not in self._trackers
        tracker = self.get(report_id)
        if is_new:
            await tracker.load_changes(report_id)
        return tracker

    def release(self, report_id: str) -> Optional[ChangeTracker]:
        """Forget the tracker of a finished report session."""
        return self._trackers.pop(report_id, None)

    def clear(self) -> None:
        self._trackers.clear()

    def __contains__(self, report_id: str) -> bool:
        return report_id in self._trackers

    def __len__(self) -> int:
        return len(self._trackers)
