"""Tests for the change-tracking service and change list operations."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from structedit.core import ChangeTrackingService, compute_statistics, prune_changes
from structedit.core.service import generate_change_id
from structedit.models import ChangeTrackingMetadata, ChangeType, FieldChange, ValidationStatus
from structedit.storage import InMemoryMetadataStore

from conftest import OTHER_SECTION_ID, REPORT_ID, SECTION_ID

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def make_change(change_id, days_ago=0, acknowledged=False, section_id=SECTION_ID, **kwargs):
    kwargs.setdefault("change_type", ChangeType.AI_UPDATE)
    return FieldChange(
        id=change_id,
        section_id=section_id,
        field_path="observations.voice",
        previous_value=None,
        new_value=["clear"],
        timestamp=(NOW - timedelta(days=days_ago)).isoformat(),
        acknowledged=acknowledged,
        **kwargs,
    )


class TestGenerateChangeId:
    """Tests for change id format."""

    def test_format(self):
        """Ids carry a prefix, the time in millis and a random suffix."""
        change_id = generate_change_id(NOW)
        prefix, millis, suffix = change_id.split("_")

        assert prefix == "change"
        assert int(millis) == int(NOW.timestamp() * 1000)
        assert len(suffix) == 9


class TestPruneChanges:
    """Tests for the retention rule."""

    def test_old_acknowledged_removed(self):
        """Only old acknowledged changes are pruned."""
        changes = [
            make_change("old_ack", days_ago=40, acknowledged=True),
            make_change("old_pending", days_ago=40),
            make_change("new_ack", days_ago=5, acknowledged=True),
        ]

        kept = prune_changes(changes, 30, now=NOW)

        assert [change.id for change in kept] == ["old_pending", "new_ack"]


class TestComputeStatistics:
    """Tests for change statistics."""

    def test_counts(self):
        """Statistics count by type and section."""
        changes = [
            make_change("a", days_ago=2),
            make_change("b", days_ago=1, acknowledged=True, change_type=ChangeType.USER_EDIT),
            make_change("c", section_id=OTHER_SECTION_ID),
        ]

        stats = compute_statistics(changes)

        assert stats.total == 3
        assert stats.unacknowledged == 2
        assert stats.by_type == {"ai_update": 2, "user_edit": 1}
        assert stats.by_section == {SECTION_ID: 2, OTHER_SECTION_ID: 1}
        assert stats.last_update == NOW.isoformat()


class TestChangeTrackingService:
    """Tests for store-backed change operations."""

    @pytest.fixture
    def seeded(self):
        metadata = ChangeTrackingMetadata(
            field_changes=[
                make_change("old_ack", days_ago=40, acknowledged=True),
                make_change("old_pending", days_ago=40),
                make_change("recent", days_ago=1, change_type=ChangeType.USER_EDIT),
            ],
            last_ai_update=(NOW - timedelta(days=40)).isoformat(),
        )
        store = InMemoryMetadataStore({REPORT_ID: metadata.to_blob()})
        return ChangeTrackingService(store), store

    @pytest.mark.asyncio
    async def test_load_missing_report(self, service):
        """A report without metadata loads an empty log."""
        metadata = await service.load_change_metadata(REPORT_ID)

        assert metadata.field_changes == []

    @pytest.mark.asyncio
    async def test_load_failure_returns_empty(self):
        """Store read failures load an empty log."""
        store = MagicMock()
        store.load = AsyncMock(side_effect=ConnectionError("db down"))

        metadata = await ChangeTrackingService(store).load_change_metadata(REPORT_ID)

        assert metadata == ChangeTrackingMetadata()

    @pytest.mark.asyncio
    async def test_save_failure_returns_false(self):
        """Store write failures report False."""
        store = MagicMock()
        store.save = AsyncMock(side_effect=ConnectionError("db down"))

        saved = await ChangeTrackingService(store).save_change_metadata(
            REPORT_ID, ChangeTrackingMetadata()
        )

        assert saved is False

    @pytest.mark.asyncio
    async def test_blob_omits_unset_fields(self, service, store):
        """Unset optional fields stay out of the blob."""
        await service.save_change_metadata(REPORT_ID, ChangeTrackingMetadata())

        assert await store.load(REPORT_ID) == {"field_changes": []}

    @pytest.mark.asyncio
    async def test_add_field_change(self, service):
        """Adding an AI change sets the last AI update."""
        change_id = await service.add_field_change(
            REPORT_ID, SECTION_ID, "observations.voice", [], ["clear"], ChangeType.AI_UPDATE
        )

        metadata = await service.load_change_metadata(REPORT_ID)
        assert [change.id for change in metadata.field_changes] == [change_id]
        assert metadata.last_ai_update == metadata.field_changes[0].timestamp

    @pytest.mark.asyncio
    async def test_filtered_and_unacknowledged(self, seeded):
        """Filtered and pending views read newest first."""
        service, _ = seeded

        edits = await service.get_filtered_changes(REPORT_ID, {"change_type": "user_edit"})
        pending = await service.get_unacknowledged_changes(REPORT_ID)

        assert [change.id for change in edits] == ["recent"]
        assert [change.id for change in pending] == ["recent", "old_pending"]

    @pytest.mark.asyncio
    async def test_acknowledge_changes(self, seeded):
        """Acknowledged changes leave the pending view."""
        service, _ = seeded

        assert await service.acknowledge_changes(REPORT_ID, ["old_pending"])

        pending = await service.get_unacknowledged_changes(REPORT_ID)
        assert [change.id for change in pending] == ["recent"]

    @pytest.mark.asyncio
    async def test_statistics(self, seeded):
        """Stored statistics cover the whole log."""
        service, _ = seeded

        stats = await service.get_change_statistics(REPORT_ID)

        assert stats.total == 3
        assert stats.unacknowledged == 2
        assert stats.last_update == (NOW - timedelta(days=40)).isoformat()

    @pytest.mark.asyncio
    async def test_update_validation_status(self, seeded):
        """Validation status is stored without touching changes."""
        service, store = seeded

        assert await service.update_validation_status(
            REPORT_ID, ValidationStatus.INVALID, ["voice: expected array"]
        )

        blob = await store.load(REPORT_ID)
        assert blob["validation_status"] == "invalid"
        assert blob["validation_errors"] == ["voice: expected array"]
        assert len(blob["field_changes"]) == 3

    @pytest.mark.asyncio
    async def test_cleanup_old_changes(self, seeded):
        """Stored logs are pruned by age."""
        service, _ = seeded

        assert await service.cleanup_old_changes(REPORT_ID, days_to_keep=30, now=NOW)

        metadata = await service.load_change_metadata(REPORT_ID)
        assert [change.id for change in metadata.field_changes] == ["old_pending", "recent"]
