"""Base enums and common types for structedit."""

from enum import Enum


class FieldType(str, Enum):
    """Types a field schema node can declare."""

    STRING = "string"
    BOOLEAN = "boolean"
    NUMBER = "number"
    ARRAY = "array"
    OBJECT = "object"
    DATE = "date"
    CHECKBOX = "checkbox"
    SELECT = "select"
    ENUM = "enum"
    PARAGRAPH = "paragraph"
    TABLE = "table"


class MergeStrategy(str, Enum):
    """How a new value combines with the value already at a path."""

    REPLACE = "replace"
    APPEND = "append"
    MERGE = "merge"


class ChangeType(str, Enum):
    """Origin of a tracked field change."""

    AI_UPDATE = "ai_update"
    USER_EDIT = "user_edit"
    MERGE = "merge"
    VALIDATION_FIX = "validation_fix"


class ValidationStatus(str, Enum):
    """Validation state stored alongside a report's change log."""

    VALID = "valid"
    INVALID = "invalid"


class ErrorCode(str, Enum):
    """Codes attached to rejected field paths and updates."""

    INVALID_FIELD_PATH = "INVALID_FIELD_PATH"
    FORBIDDEN_FIELD_PATH = "FORBIDDEN_FIELD_PATH"
    MALFORMED_FIELD_PATH = "MALFORMED_FIELD_PATH"
    INVALID_SECTION_ID = "INVALID_SECTION_ID"
    INVALID_MERGE_STRATEGY = "INVALID_MERGE_STRATEGY"
    INVALID_CONFIDENCE_SCORE = "INVALID_CONFIDENCE_SCORE"
    INVALID_FIELD_UPDATE = "INVALID_FIELD_UPDATE"
    UNKNOWN_FIELD_PATH = "UNKNOWN_FIELD_PATH"
    INVALID_FIELD_VALUE = "INVALID_FIELD_VALUE"


# Reserved key naming the whole section blob; never valid inside a document.
STRUCTURED_DATA_KEY = "structured_data"
