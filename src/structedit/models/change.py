"""Change-tracking models: audit records, filters, the persisted blob."""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from .base import ChangeType, MergeStrategy, ValidationStatus


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ChangeMetadata(BaseModel):
    """Context recorded with a change."""

    merge_strategy: Optional[MergeStrategy] = None
    validation_errors: Optional[list[str]] = None
    processing_context: Optional[str] = None


class FieldChange(BaseModel):
    """
    Immutable audit record of one accepted field mutation.

    The only transition is acknowledgement by a reviewer, which replaces the
    record with a copy whose ``acknowledged`` flag is set.
    """

    id: str
    section_id: str
    field_path: str
    previous_value: Any = None
    new_value: Any = None
    change_type: ChangeType
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    source_reference: Optional[str] = None
    timestamp: str = Field(..., description="ISO-8601 instant")
    acknowledged: bool = False
    user_id: Optional[str] = None
    metadata: Optional[ChangeMetadata] = None

    class Config:
        frozen = True

    @property
    def occurred_at(self) -> datetime:
        """Timestamp as an aware datetime."""
        return parse_timestamp(self.timestamp)

    def acknowledge(self) -> "FieldChange":
        """Return an acknowledged copy of this change."""
        return self.model_copy(update={"acknowledged": True})


class DateRange(BaseModel):
    """Closed interval of ISO-8601 instants."""

    start: str
    end: str

    def contains(self, timestamp: str) -> bool:
        return parse_timestamp(self.start) <= parse_timestamp(timestamp) <= parse_timestamp(self.end)


class ChangeFilter(BaseModel):
    """Conjunction of optional predicates over field changes."""

    section_id: Optional[str] = None
    field_path: Optional[str] = None
    change_type: Optional[ChangeType] = None
    acknowledged: Optional[bool] = None
    user_id: Optional[str] = None
    date_range: Optional[DateRange] = None

    def matches(self, change: FieldChange) -> bool:
        if self.section_id is not None and change.section_id != self.section_id:
            return False
        if self.field_path is not None and change.field_path != self.field_path:
            return False
        if self.change_type is not None and change.change_type != self.change_type:
            return False
        if self.acknowledged is not None and change.acknowledged != self.acknowledged:
            return False
        if self.user_id is not None and change.user_id != self.user_id:
            return False
        if self.date_range is not None and not self.date_range.contains(change.timestamp):
            return False
        return True


class ChangeTrackingMetadata(BaseModel):
    """Blob persisted per report in the metadata store."""

    field_changes: list[FieldChange] = Field(default_factory=list)
    last_ai_update: Optional[str] = None
    validation_status: Optional[ValidationStatus] = None
    validation_errors: Optional[list[str]] = None

    def to_blob(self) -> dict[str, Any]:
        """JSON-ready dict; unset optional top-level keys are omitted."""
        blob = self.model_dump(mode="json")
        return {key: value for key, value in blob.items() if value is not None}


class ChangeStatistics(BaseModel):
    """Aggregate view over a report's change log."""

    total: int = 0
    unacknowledged: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_section: dict[str, int] = Field(default_factory=dict)
    last_update: Optional[str] = None
