"""Data integrity guard.

Stops the "Russian-doll" ``structured_data`` nesting problem before it
reaches a document, and repairs documents that already carry it.

``structured_data`` names the whole section blob in storage. An update
addressed at that path (or a value that embeds that key) places the document
inside itself, and every further round of processing adds another layer.
A related failure leaves hundreds of numeric-string keys at the top level of
a section, the residue of a list serialized as an object.
"""

import copy
import re
from collections.abc import Mapping
from typing import Any, Optional, Union
from uuid import UUID

from structedit.config import settings
from structedit.models import (
    STRUCTURED_DATA_KEY,
    CleanupResult,
    ErrorCode,
    FieldSchema,
    FieldType,
    FieldUpdate,
    MergeStrategy,
    UpdateCheck,
    ValidationResult,
)
from structedit.utils.logging import get_logger

logger = get_logger(__name__)

CIRCULAR_REFERENCE_MARKER = "[Circular Reference Removed]"

RUSSIAN_DOLL_ISSUE = "Russian-doll structured_data nesting detected"
NUMERIC_KEYS_ISSUE = "Excessive numeric keys detected"
REMOVE_NESTED_ACTION = "Removed nested structured_data keys"
REMOVE_NUMERIC_ACTION = "Removed excessive numeric keys"

_FORBIDDEN_PATH = re.compile(rf"^{STRUCTURED_DATA_KEY}(\.|$)")
_NUMERIC_KEY = re.compile(r"^\d+$")
_UUID = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_VALID_STRATEGIES = {strategy.value for strategy in MergeStrategy}
_CHOICE_TYPES = (FieldType.SELECT, FieldType.ENUM)


class DataIntegrityGuard:
    """Validates field updates and repairs corrupted section documents.

    Args:
        numeric_key_threshold: Top-level numeric-key count above which a
            document is considered corrupted, and the largest numeric key
            kept during cleanup.
        max_nesting_depth: Depth past which cleanup stops scanning and
            copies nested containers unchanged.
    """

    def __init__(
        self,
        numeric_key_threshold: Optional[int] = None,
        max_nesting_depth: Optional[int] = None,
    ):
        self.numeric_key_threshold = (
            numeric_key_threshold if numeric_key_threshold is not None else settings.numeric_key_threshold
        )
        self.max_nesting_depth = (
            max_nesting_depth if max_nesting_depth is not None else settings.max_nesting_depth
        )

    def validate_field_path(self, field_path: Any) -> ValidationResult:
        """Reject empty, self-nesting and malformed field paths."""
        if not isinstance(field_path, str) or not field_path.strip():
            return ValidationResult.fail(
                ErrorCode.INVALID_FIELD_PATH,
                "Field path cannot be null, undefined, or empty",
            )

        if _FORBIDDEN_PATH.match(field_path):
            return ValidationResult.fail(
                ErrorCode.FORBIDDEN_FIELD_PATH,
                f'Field path "{field_path}" is forbidden. '
                f"Cannot nest {STRUCTURED_DATA_KEY} inside itself.",
                suggestion=(
                    'Use specific field paths like '
                    '"assessment_results.test_scores.wisc_v.verbal_iq"'
                ),
            )

        if any(not part.strip() for part in field_path.split(".")):
            return ValidationResult.fail(
                ErrorCode.MALFORMED_FIELD_PATH,
                "Field path contains empty segments",
            )

        return ValidationResult.ok()

    def validate_update(self, update: Union[FieldUpdate, Mapping]) -> ValidationResult:
        """Check path, section id, merge strategy and confidence of an update.

        Checks run in that order on the raw proposal, so a mistyped field never
        hides a forbidden path.
        """
        if isinstance(update, FieldUpdate):
            fields = update.model_dump()
        elif isinstance(update, Mapping):
            fields = dict(update)
        else:
            return ValidationResult.fail(
                ErrorCode.INVALID_FIELD_UPDATE,
                f"Field update must be a mapping, got {type(update).__name__}",
            )

        path_result = self.validate_field_path(fields.get("field_path"))
        if not path_result.is_valid:
            return path_result

        section_id = fields.get("section_id")
        if isinstance(section_id, UUID):
            section_id = str(section_id)
        if not isinstance(section_id, str) or not _UUID.match(section_id):
            return ValidationResult.fail(
                ErrorCode.INVALID_SECTION_ID,
                f"Invalid section ID format: {section_id}",
            )

        strategy = fields.get("merge_strategy", MergeStrategy.REPLACE.value)
        if isinstance(strategy, MergeStrategy):
            strategy = strategy.value
        if not isinstance(strategy, str) or strategy not in _VALID_STRATEGIES:
            return ValidationResult.fail(
                ErrorCode.INVALID_MERGE_STRATEGY,
                f"Invalid merge strategy: {strategy}",
            )

        confidence = fields.get("confidence")
        if confidence is not None and (
            isinstance(confidence, bool)
            or not isinstance(confidence, (int, float))
            or not 0.0 <= confidence <= 1.0
        ):
            return ValidationResult.fail(
                ErrorCode.INVALID_CONFIDENCE_SCORE,
                f"Confidence score must be between 0 and 1, got: {confidence}",
            )

        source_reference = fields.get("source_reference")
        if source_reference is not None and not isinstance(source_reference, str):
            return ValidationResult.fail(
                ErrorCode.INVALID_FIELD_UPDATE,
                f"Source reference must be text, got {type(source_reference).__name__}",
            )

        return ValidationResult.ok()

    def validate_value(self, value: Any, field_schema: FieldSchema) -> ValidationResult:
        """Check a value against the type and options of its schema node."""
        if value is None:
            if field_schema.required:
                return ValidationResult.fail(
                    ErrorCode.INVALID_FIELD_VALUE,
                    f"Field '{field_schema.key}' is required but received no value",
                )
            return ValidationResult.ok()

        if field_schema.type == FieldType.ARRAY and not isinstance(value, list):
            return ValidationResult.fail(
                ErrorCode.INVALID_FIELD_VALUE,
                f"Expected array for field '{field_schema.key}', got {type(value).__name__}",
            )
        if field_schema.type == FieldType.OBJECT and not isinstance(value, dict):
            return ValidationResult.fail(
                ErrorCode.INVALID_FIELD_VALUE,
                f"Expected object for field '{field_schema.key}', got {type(value).__name__}",
            )

        if field_schema.type in _CHOICE_TYPES and field_schema.options:
            choices = value if isinstance(value, list) else [value]
            rejected = [str(choice) for choice in choices if str(choice) not in field_schema.options]
            if rejected:
                return ValidationResult.fail(
                    ErrorCode.INVALID_FIELD_VALUE,
                    f'Value "{", ".join(rejected)}" not in allowed options: '
                    f'{", ".join(field_schema.options)}',
                )

        return ValidationResult.ok()

    def prevent_circular_references(self, data: Any) -> Any:
        """Return a copy of ``data`` with reference cycles cut.

        A container reached again through its own descendants is replaced by
        a marker string. The same container shared by two sibling branches is
        not a cycle and is copied into both. ``structured_data`` keys below
        the root are dropped.
        """
        if not isinstance(data, (dict, list)):
            return data

        ancestors: set[int] = set()

        def traverse(value: Any, path: list[str]) -> Any:
            if not isinstance(value, (dict, list)):
                return value

            if id(value) in ancestors:
                logger.warning("Circular reference detected at path: %s", ".".join(path))
                return CIRCULAR_REFERENCE_MARKER

            ancestors.add(id(value))
            try:
                if isinstance(value, list):
                    return [traverse(item, path + [str(i)]) for i, item in enumerate(value)]

                result = {}
                for key, item in value.items():
                    if key == STRUCTURED_DATA_KEY and path:
                        logger.warning(
                            "Prevented %s nesting at path: %s",
                            STRUCTURED_DATA_KEY,
                            ".".join(path + [key]),
                        )
                        continue
                    result[key] = traverse(item, path + [str(key)])
                return result
            finally:
                ancestors.discard(id(value))

        return traverse(data, [])

    def clean_corrupted_data(self, data: Any) -> CleanupResult:
        """Detect and remove Russian-doll nesting and numeric-key junk.

        A document without issues comes back unchanged. Containers nested
        deeper than ``max_nesting_depth`` are neither scanned nor cleaned.
        """
        if not isinstance(data, (dict, list)):
            return CleanupResult(cleaned_data=data)

        excessive_numeric = False
        numeric_count = 0
        if isinstance(data, dict):
            numeric_count = sum(1 for key in data if _is_numeric_key(key))
            excessive_numeric = numeric_count > self.numeric_key_threshold

        removed: list[str] = []
        cleaned = self._cleanup(data, [], removed, drop_numeric=excessive_numeric)

        issues: list[str] = []
        if removed:
            issues.append(RUSSIAN_DOLL_ISSUE)
        if excessive_numeric:
            issues.append(f"{NUMERIC_KEYS_ISSUE}: {numeric_count}")

        return CleanupResult(
            cleaned_data=cleaned,
            issues_found=issues,
            was_corrupted=bool(issues),
            cleanup_actions=_cleanup_actions(issues),
        )

    def _cleanup(
        self, data: Any, path: list[str], removed: list[str], drop_numeric: bool = False
    ) -> Any:
        # Past the depth guard subtrees are copied as they are.
        if len(path) > self.max_nesting_depth:
            return copy.deepcopy(data)

        if isinstance(data, list):
            return [self._cleanup(item, path + [str(i)], removed) for i, item in enumerate(data)]
        if not isinstance(data, dict):
            return data

        cleaned = {}
        for key, value in data.items():
            if key == STRUCTURED_DATA_KEY and isinstance(value, (dict, list)):
                location = ".".join(path + [key])
                logger.warning(
                    "Removed nested %s key at %s during cleanup", STRUCTURED_DATA_KEY, location
                )
                removed.append(location)
                continue
            if drop_numeric and not path and _is_numeric_key(key) and (
                int(key) > self.numeric_key_threshold
            ):
                continue
            cleaned[key] = self._cleanup(value, path + [str(key)], removed)
        return cleaned


def _is_numeric_key(key: Any) -> bool:
    return isinstance(key, str) and bool(_NUMERIC_KEY.match(key))


def _cleanup_actions(issues: list[str]) -> list[str]:
    actions = []
    if any(issue.startswith(RUSSIAN_DOLL_ISSUE) for issue in issues):
        actions.append(REMOVE_NESTED_ACTION)
    if any(issue.startswith(NUMERIC_KEYS_ISSUE) for issue in issues):
        actions.append(REMOVE_NUMERIC_ACTION)
    return actions


data_integrity_guard = DataIntegrityGuard()


def validate_and_clean_field_update(
    update: Union[FieldUpdate, Mapping],
    guard: Optional[DataIntegrityGuard] = None,
) -> UpdateCheck:
    """Validate an update and repair a corrupted value before it is applied.

    This is the entry point for callers applying AI-proposed edits.
    """
    guard = guard or data_integrity_guard

    validation = guard.validate_update(update)
    if not validation.is_valid:
        return UpdateCheck(is_valid=False, error=validation.error, code=validation.code)

    if not isinstance(update, FieldUpdate):
        update = FieldUpdate.model_validate(update)

    if isinstance(update.value, (dict, list)):
        cleanup = guard.clean_corrupted_data(update.value)
        if cleanup.was_corrupted:
            logger.warning(
                "Cleaned corrupted data in field update for %s: %s",
                update.field_path,
                ", ".join(cleanup.issues_found),
            )
            return UpdateCheck(
                is_valid=True,
                cleaned_update=update.model_copy(update={"value": cleanup.cleaned_data}),
                was_cleaned=True,
            )

    return UpdateCheck(is_valid=True, cleaned_update=update)
