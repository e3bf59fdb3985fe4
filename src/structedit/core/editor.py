"""Applying field updates to section documents.

The full path of one edit::

    proposal -> guard (validate + clean) -> schema check -> merge
             -> resolver (copy-on-write set) -> tracker (audit record)
"""

import copy
from collections.abc import Mapping
from typing import Any, Optional, Union

from structedit.exceptions import InvalidFieldUpdateError
from structedit.models import (
    AppliedUpdate,
    ChangeMetadata,
    ChangeType,
    ErrorCode,
    FieldSchema,
    FieldUpdate,
    MergeStrategy,
    SectionSchema,
)
from structedit.utils.logging import get_logger

from .guard import DataIntegrityGuard, data_integrity_guard, validate_and_clean_field_update
from .merge import merge_values
from .paths import parse_field_path
from .resolver import FieldPathResolver, field_path_resolver
from .tracker import ChangeTracker

logger = get_logger(__name__)


def apply_field_update(
    document: Any,
    update: Union[FieldUpdate, Mapping],
    *,
    tracker: Optional[ChangeTracker] = None,
    schema: Optional[SectionSchema] = None,
    change_type: ChangeType = ChangeType.AI_UPDATE,
    user_id: Optional[str] = None,
    processing_context: Optional[str] = None,
    guard: Optional[DataIntegrityGuard] = None,
    resolver: Optional[FieldPathResolver] = None,
) -> AppliedUpdate:
    """Validate, merge and write one field update; record it if tracked.

    The input document is not modified.

    Raises:
        InvalidFieldUpdateError: if the guard rejects the update, the path is
            not declared by ``schema``, or the value breaks the field's
            schema constraints.
    """
    guard = guard or data_integrity_guard
    resolver = resolver or field_path_resolver

    check = validate_and_clean_field_update(update, guard)
    if not check.is_valid:
        raise InvalidFieldUpdateError(check.error, code=check.code)
    update = check.cleaned_update

    field_schema: Optional[FieldSchema] = None
    if schema is not None:
        path_check = resolver.validate_field_path_detailed(update.field_path, schema)
        if not path_check.is_valid:
            raise InvalidFieldUpdateError(
                "; ".join(path_check.errors), code=ErrorCode.UNKNOWN_FIELD_PATH
            )
        field_schema = path_check.field_schema
        # Element paths resolve to their array field; the value is one item.
        if parse_field_path(update.field_path)[-1].is_index:
            field_schema = None

    value = guard.prevent_circular_references(update.value)
    previous_value = copy.deepcopy(resolver.get_field_value(document, update.field_path))
    new_value = merge_values(previous_value, value, update.merge_strategy, field_schema)

    if field_schema is not None:
        value_check = guard.validate_value(new_value, field_schema)
        if not value_check.is_valid:
            raise InvalidFieldUpdateError(value_check.error, code=value_check.code)

    new_document = resolver.set_field_value(document, update.field_path, new_value)

    change_id = None
    if tracker is not None:
        change_id = tracker.track_field_change(
            update.section_id,
            update.field_path,
            previous_value,
            new_value,
            change_type,
            confidence=update.confidence,
            source_reference=update.source_reference,
            user_id=user_id,
            metadata=ChangeMetadata(
                merge_strategy=MergeStrategy(update.merge_strategy),
                processing_context=processing_context,
            ),
        )

    logger.debug(
        "Applied %s update to %s in section %s",
        update.merge_strategy,
        update.field_path,
        update.section_id,
    )
    return AppliedUpdate(
        document=new_document,
        field_path=update.field_path,
        previous_value=previous_value,
        new_value=new_value,
        change_id=change_id,
        cleanup_applied=check.was_cleaned,
    )
