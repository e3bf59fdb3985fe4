"""Change-tracking service over a metadata store.

Reads and writes a report's whole change-tracking blob through a
:class:`MetadataStore` and offers filtering, statistics and retention on
top of it. Store failures never escape this class: loads fall back to an
empty blob and saves report ``False``.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from structedit.config import settings
from structedit.models import (
    ChangeMetadata,
    ChangeStatistics,
    ChangeTrackingMetadata,
    ChangeType,
    FieldChange,
    ValidationStatus,
)
from structedit.storage.store import MetadataStore
from structedit.utils.logging import get_logger

from .changes import FilterLike, compute_statistics, filter_changes, latest_timestamp, prune_changes

logger = get_logger(__name__)


def generate_change_id(now: Optional[datetime] = None) -> str:
    """Unique change id: ``change_<epoch ms>_<random suffix>``."""
    millis = int((now.timestamp() if now else time.time()) * 1000)
    return f"change_{millis}_{uuid.uuid4().hex[:9]}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ChangeTrackingService:
    """Filtering, statistics and retention over persisted change logs."""

    def __init__(self, store: MetadataStore):
        self.store = store

    async def load_change_metadata(self, report_id: str) -> ChangeTrackingMetadata:
        """Load a report's blob; an empty blob on any failure."""
        try:
            blob = await self.store.load(report_id)
        except Exception:
            logger.exception("Failed to load change metadata for report %s", report_id)
            return ChangeTrackingMetadata()

        if not blob:
            return ChangeTrackingMetadata()
        try:
            return ChangeTrackingMetadata.model_validate(blob)
        except ValidationError:
            logger.exception("Stored change metadata for report %s is unreadable", report_id)
            return ChangeTrackingMetadata()

    async def save_change_metadata(self, report_id: str, metadata: ChangeTrackingMetadata) -> bool:
        """Replace a report's blob. Returns False instead of raising."""
        try:
            saved = await self.store.save(report_id, metadata.to_blob())
        except Exception:
            logger.exception("Failed to save change metadata for report %s", report_id)
            return False
        if not saved:
            logger.error("Metadata store rejected change metadata for report %s", report_id)
        return bool(saved)

    async def add_field_change(
        self,
        report_id: str,
        section_id: str,
        field_path: str,
        previous_value: Any,
        new_value: Any,
        change_type: ChangeType,
        confidence: Optional[float] = None,
        source_reference: Optional[str] = None,
        user_id: Optional[str] = None,
        metadata: Optional[ChangeMetadata] = None,
    ) -> Optional[str]:
        """Append one change to the stored log. Returns its id, or None."""
        now = utc_now()
        change = FieldChange(
            id=generate_change_id(now),
            section_id=section_id,
            field_path=field_path,
            previous_value=previous_value,
            new_value=new_value,
            change_type=change_type,
            confidence=confidence,
            source_reference=source_reference,
            timestamp=now.isoformat(),
            user_id=user_id,
            metadata=metadata,
        )
        stored = await self.load_change_metadata(report_id)
        changes = stored.field_changes + [change]
        updated = stored.model_copy(
            update={
                "field_changes": changes,
                "last_ai_update": latest_timestamp(changes, ChangeType.AI_UPDATE),
            }
        )
        if not await self.save_change_metadata(report_id, updated):
            return None
        return change.id

    async def get_filtered_changes(
        self, report_id: str, change_filter: FilterLike = None
    ) -> list[FieldChange]:
        """Stored changes matching the filter, newest first."""
        stored = await self.load_change_metadata(report_id)
        return filter_changes(stored.field_changes, change_filter)

    async def get_unacknowledged_changes(self, report_id: str) -> list[FieldChange]:
        return await self.get_filtered_changes(report_id, {"acknowledged": False})

    async def acknowledge_changes(self, report_id: str, change_ids: list[str]) -> bool:
        """Mark stored changes acknowledged. True when nothing needed saving."""
        wanted = set(change_ids)
        stored = await self.load_change_metadata(report_id)
        touched = False
        changes = []
        for change in stored.field_changes:
            if change.id in wanted and not change.acknowledged:
                change = change.acknowledge()
                touched = True
            changes.append(change)
        if not touched:
            return True
        return await self.save_change_metadata(
            report_id, stored.model_copy(update={"field_changes": changes})
        )

    async def get_change_statistics(self, report_id: str) -> ChangeStatistics:
        stored = await self.load_change_metadata(report_id)
        return compute_statistics(stored.field_changes, stored.last_ai_update)

    async def update_validation_status(
        self,
        report_id: str,
        status: ValidationStatus,
        errors: Optional[list[str]] = None,
    ) -> bool:
        stored = await self.load_change_metadata(report_id)
        updated = stored.model_copy(
            update={"validation_status": ValidationStatus(status), "validation_errors": errors}
        )
        return await self.save_change_metadata(report_id, updated)

    async def cleanup_old_changes(
        self,
        report_id: str,
        days_to_keep: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """Remove acknowledged changes older than ``days_to_keep`` days.

        Unacknowledged changes are kept regardless of age.
        """
        if days_to_keep is None:
            days_to_keep = settings.change_retention_days
        stored = await self.load_change_metadata(report_id)
        kept = prune_changes(stored.field_changes, days_to_keep, now=now)
        removed = len(stored.field_changes) - len(kept)
        logger.info("Pruning %d old acknowledged changes from report %s", removed, report_id)
        return await self.save_change_metadata(
            report_id, stored.model_copy(update={"field_changes": kept})
        )
