"""Tests for the per-report change tracker."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from structedit.core import ChangeTracker, ChangeTrackingService, TrackerRegistry
from structedit.exceptions import ChangeNotFoundError, PersistenceError, RevertNotImplementedError
from structedit.models import ChangeType, FieldChange
from structedit.storage import InMemoryMetadataStore
from structedit.utils import background_loop

from conftest import OTHER_SECTION_ID, REPORT_ID, SECTION_ID, StepClock


def track(tracker, field_path="observations.voice", section_id=SECTION_ID, **kwargs):
    kwargs.setdefault("change_type", ChangeType.AI_UPDATE)
    return tracker.track_field_change(section_id, field_path, None, ["clear"], **kwargs)


class TestTrackFieldChange:
    """Tests for recording changes."""

    def test_records_change(self, tracker):
        """Every detail of the change is kept."""
        change_id = tracker.track_field_change(
            SECTION_ID,
            "observations.voice",
            [],
            ["clear voicing"],
            ChangeType.AI_UPDATE,
            confidence=0.8,
            source_reference="intake.pdf p2",
        )

        change = tracker.get_change(change_id)
        assert change.previous_value == []
        assert change.new_value == ["clear voicing"]
        assert change.confidence == 0.8
        assert change.source_reference == "intake.pdf p2"
        assert change.acknowledged is False
        assert change.timestamp == "2026-10-01T09:00:00+00:00"

    def test_unique_ids(self, tracker):
        """Change ids are unique and prefixed."""
        ids = {track(tracker) for _ in range(20)}

        assert len(ids) == 20
        assert all(change_id.startswith("change_") for change_id in ids)
        assert len(tracker) == 20

    def test_records_are_immutable(self, tracker):
        """Recorded changes are frozen."""
        change = tracker.get_change(track(tracker))

        with pytest.raises(Exception):
            change.acknowledged = True


class TestListeners:
    """Tests for change subscribers."""

    def test_listener_notified(self, tracker):
        """Listeners receive each new change."""
        received = []
        tracker.add_change_listener(received.append)

        change_id = track(tracker)

        assert [change.id for change in received] == [change_id]

    def test_removed_listener_not_notified(self, tracker):
        """Removed listeners stop receiving changes."""
        listener = MagicMock()
        tracker.add_change_listener(listener)
        tracker.remove_change_listener(listener)

        track(tracker)

        listener.assert_not_called()

    def test_failing_listener_isolated(self, tracker):
        """A raising listener neither blocks the others nor the caller."""
        later = MagicMock()
        tracker.add_change_listener(MagicMock(side_effect=RuntimeError("boom")))
        tracker.add_change_listener(later)

        change_id = track(tracker)

        assert change_id in tracker
        later.assert_called_once()


class TestQueries:
    """Tests for ordered and filtered views."""

    @pytest.fixture
    def populated(self, tracker):
        first = track(tracker, "observations.voice")
        second = track(tracker, "observations.notes", change_type=ChangeType.USER_EDIT, user_id="u1")
        third = track(tracker, "observations.voice")
        other = track(tracker, "observations.voice", section_id=OTHER_SECTION_ID)
        return tracker, [first, second, third, other]

    def test_section_changes_newest_first(self, populated):
        """Section queries return newest first."""
        tracker, (first, second, third, _) = populated

        ids = [change.id for change in tracker.get_changes_for_section(SECTION_ID)]

        assert ids == [third, second, first]

    def test_empty_filter_newest_first(self, populated):
        """An empty filter returns everything newest first."""
        tracker, ids = populated

        assert [change.id for change in tracker.get_filtered_changes({})] == list(reversed(ids))

    def test_history_oldest_first(self, populated):
        """Field history reads oldest first."""
        tracker, (first, _, third, _) = populated

        history = tracker.get_change_history("observations.voice", SECTION_ID)

        assert [change.id for change in history] == [first, third]

    def test_filter_predicates_combine(self, populated):
        """All filter predicates must match."""
        tracker, (_, second, _, _) = populated

        matches = tracker.get_filtered_changes(
            {"change_type": "user_edit", "user_id": "u1", "section_id": SECTION_ID}
        )

        assert [change.id for change in matches] == [second]

    def test_date_range_filter(self, populated):
        """Date ranges are inclusive at both ends."""
        tracker, (first, second, _, _) = populated

        matches = tracker.get_filtered_changes(
            {
                "date_range": {
                    "start": "2026-10-01T09:00:00Z",
                    "end": "2026-10-01T09:01:00Z",
                }
            }
        )

        assert [change.id for change in matches] == [second, first]

    def test_last_ai_update(self, populated):
        """The newest AI change sets the last update time."""
        tracker, _ = populated

        assert tracker.get_last_ai_update() == "2026-10-01T09:03:00+00:00"

    def test_last_ai_update_empty(self, tracker):
        """User edits alone leave no AI update time."""
        track(tracker, change_type=ChangeType.USER_EDIT)

        assert tracker.get_last_ai_update() is None


class TestAcknowledgement:
    """Tests for review acknowledgement."""

    def test_acknowledge_isolated(self, tracker):
        """Acknowledging one change leaves the others pending."""
        a = track(tracker)
        b = track(tracker)

        assert tracker.acknowledge_change(a)

        assert tracker.get_change(a).acknowledged
        assert not tracker.get_change(b).acknowledged
        pending = [change.id for change in tracker.get_unacknowledged_changes()]
        assert pending == [b]

    def test_acknowledge_unknown_is_noop(self, tracker):
        """Unknown ids acknowledge nothing."""
        track(tracker)

        assert not tracker.acknowledge_change("change_0_missing")

    def test_acknowledge_multiple(self, tracker):
        """Bulk acknowledgement skips unknown ids."""
        ids = [track(tracker) for _ in range(3)]

        assert tracker.acknowledge_multiple_changes(ids[:2] + ["unknown"])

        assert [change.id for change in tracker.get_unacknowledged_changes()] == [ids[2]]

    def test_acknowledge_twice_reports_no_change(self, tracker):
        """A second acknowledgement changes nothing."""
        change_id = track(tracker)
        tracker.acknowledge_change(change_id)

        assert not tracker.acknowledge_change(change_id)


class TestRevertAndClear:
    """Tests for revert and clear."""

    def test_revert_unknown(self, tracker):
        """Reverting an unknown change is an error."""
        with pytest.raises(ChangeNotFoundError):
            tracker.revert_change("change_0_missing")

    def test_revert_known_not_implemented(self, tracker):
        """Revert is refused and the change stays."""
        change_id = track(tracker)

        with pytest.raises(RevertNotImplementedError):
            tracker.revert_change(change_id)
        assert change_id in tracker

    def test_clear(self, tracker):
        """Clearing empties the log."""
        track(tracker)
        tracker.clear_changes()

        assert len(tracker) == 0


class TestPersistence:
    """Tests for mirroring the log to a metadata store."""

    @pytest.fixture
    def store(self):
        return InMemoryMetadataStore()

    @pytest.fixture
    def persistent(self, store):
        return ChangeTracker(
            report_id=REPORT_ID, service=ChangeTrackingService(store), clock=StepClock()
        )

    def test_persists_without_event_loop(self, persistent, store):
        """Synchronous callers still get their changes stored."""
        track(persistent)

        assert REPORT_ID in store

    def test_sync_writes_share_one_loop(self):
        """Synchronous writes all run on the shared background loop."""
        loops = []

        class RecordingStore(InMemoryMetadataStore):
            async def save(self, report_id, blob):
                loops.append(asyncio.get_running_loop())
                return await super().save(report_id, blob)

        tracker = ChangeTracker(
            report_id=REPORT_ID, service=ChangeTrackingService(RecordingStore())
        )

        track(tracker)
        track(tracker)

        assert len(loops) == 2
        assert loops[0] is loops[1] is background_loop()

    @pytest.mark.asyncio
    async def test_persists_in_background(self, persistent, store):
        """Inside a loop the write runs as a task."""
        change_id = track(persistent)
        await persistent.wait_for_persistence()

        blob = await store.load(REPORT_ID)
        assert [change["id"] for change in blob["field_changes"]] == [change_id]
        assert blob["last_ai_update"] == "2026-10-01T09:00:00+00:00"
        assert blob["validation_status"] == "valid"

    @pytest.mark.asyncio
    async def test_acknowledgement_persisted(self, persistent, store):
        """Acknowledgements are written through."""
        change_id = track(persistent)
        persistent.acknowledge_change(change_id)
        await persistent.wait_for_persistence()

        blob = await store.load(REPORT_ID)
        assert blob["field_changes"][0]["acknowledged"] is True

    @pytest.mark.asyncio
    async def test_failure_keeps_memory_and_calls_hook(self):
        """A refused write goes to the hook, not the caller."""
        store = MagicMock()
        store.save = AsyncMock(return_value=False)
        hook = MagicMock()
        tracker = ChangeTracker(
            report_id=REPORT_ID, service=ChangeTrackingService(store), on_persist_error=hook
        )

        change_id = track(tracker)
        await tracker.wait_for_persistence()

        assert change_id in tracker
        hook.assert_called_once()
        assert isinstance(hook.call_args.args[0], PersistenceError)

    @pytest.mark.asyncio
    async def test_store_exception_never_raises(self):
        """Store exceptions are contained."""
        store = MagicMock()
        store.save = AsyncMock(side_effect=ConnectionError("db down"))
        tracker = ChangeTracker(report_id=REPORT_ID, service=ChangeTrackingService(store))
        track(tracker)
        await tracker.wait_for_persistence()

        assert await tracker.persist_changes() is False
        assert len(tracker) == 1

    @pytest.mark.asyncio
    async def test_load_changes_round_trip(self, persistent, store):
        """A stored log reloads in order."""
        first = track(persistent)
        second = track(persistent)
        await persistent.wait_for_persistence()

        reloaded = ChangeTracker(service=ChangeTrackingService(store))
        await reloaded.load_changes(REPORT_ID)

        assert [change.id for change in reloaded.changes] == [first, second]
        assert all(isinstance(change, FieldChange) for change in reloaded.changes)

    @pytest.mark.asyncio
    async def test_load_unreadable_blob_yields_empty_log(self):
        """An unreadable blob loads as an empty log."""
        store = InMemoryMetadataStore({REPORT_ID: {"field_changes": "garbage"}})
        tracker = ChangeTracker(service=ChangeTrackingService(store))

        await tracker.load_changes(REPORT_ID)

        assert len(tracker) == 0

    def test_disabled_persistence_skips_store(self):
        """Trackers without persistence never touch the store."""
        store = MagicMock()
        tracker = ChangeTracker(
            report_id=REPORT_ID,
            service=ChangeTrackingService(store),
            persistence_enabled=False,
        )

        track(tracker)

        store.save.assert_not_called()


class TestTrackerRegistry:
    """Tests for per-report tracker instances."""

    def test_same_tracker_per_report(self):
        """One tracker per report id."""
        registry = TrackerRegistry(persistence_enabled=False)

        assert registry.get("r1") is registry.get("r1")
        assert registry.get("r1") is not registry.get("r2")
        assert len(registry) == 2

    def test_release(self):
        """Released trackers are replaced on next use."""
        registry = TrackerRegistry(persistence_enabled=False)
        tracker = registry.get("r1")

        assert registry.release("r1") is tracker
        assert "r1" not in registry
        assert registry.get("r1") is not tracker

    @pytest.mark.asyncio
    async def test_open_loads_stored_log(self, service):
        """Opening a report loads its stored log once."""
        source = ChangeTracker(report_id=REPORT_ID, service=service)
        change_id = track(source)
        await source.wait_for_persistence()
        registry = TrackerRegistry(service=service, persistence_enabled=True)

        tracker = await registry.open(REPORT_ID)

        assert change_id in tracker
        assert await registry.open(REPORT_ID) is tracker
