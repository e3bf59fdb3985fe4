"""Pydantic models for structedit.

Section documents themselves are plain nested ``dict``/``list``/primitive
values; their legal shape is described by a :class:`SectionSchema` rather
than by static types. The models here cover everything around them:

- Schema: SectionSchema -> FieldSchema tree
- Updates: FieldUpdate proposals and AppliedUpdate outcomes
- Audit: FieldChange records, ChangeFilter, the persisted ChangeTrackingMetadata
- Results: ValidationResult, FieldPathValidationResult, UpdateCheck, CleanupResult
"""

from .base import (
    STRUCTURED_DATA_KEY,
    ChangeType,
    ErrorCode,
    FieldType,
    MergeStrategy,
    ValidationStatus,
)
from .change import (
    ChangeFilter,
    ChangeMetadata,
    ChangeStatistics,
    ChangeTrackingMetadata,
    DateRange,
    FieldChange,
    parse_timestamp,
)
from .cleanup import (
    CleanupResult,
    SectionCleanupDetail,
    SectionCleanupReport,
)
from .schema import (
    FieldSchema,
    SectionSchema,
)
from .update import (
    AppliedUpdate,
    FieldUpdate,
)
from .validation import (
    FieldPathValidationResult,
    UpdateCheck,
    ValidationResult,
)

__all__ = [
    # Base types
    "STRUCTURED_DATA_KEY",
    "ChangeType",
    "ErrorCode",
    "FieldType",
    "MergeStrategy",
    "ValidationStatus",
    # Schema
    "FieldSchema",
    "SectionSchema",
    # Updates
    "AppliedUpdate",
    "FieldUpdate",
    # Changes
    "ChangeFilter",
    "ChangeMetadata",
    "ChangeStatistics",
    "ChangeTrackingMetadata",
    "DateRange",
    "FieldChange",
    "parse_timestamp",
    # Results
    "CleanupResult",
    "FieldPathValidationResult",
    "SectionCleanupDetail",
    "SectionCleanupReport",
    "UpdateCheck",
    "ValidationResult",
]
