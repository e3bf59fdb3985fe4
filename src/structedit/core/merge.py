"""Merge strategies for combining a new value with the value at a path."""

import copy
from typing import Any, Optional, Union

from structedit.models import FieldSchema, FieldType, MergeStrategy

_TEXT_TYPES = (FieldType.STRING, FieldType.PARAGRAPH)


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return list(value)
    return [value]


def append_values(current: Any, value: Any, field_schema: Optional[FieldSchema] = None) -> Any:
    """Concatenate ``value`` onto ``current``.

    Lists are concatenated; a scalar on either side is wrapped in a list
    first. Text fields holding a string get the new text joined with a space.
    """
    if (
        field_schema is not None
        and field_schema.type in _TEXT_TYPES
        and (current is None or isinstance(current, str))
        and not isinstance(value, (list, dict))
    ):
        pieces = [piece for piece in (current, value) if piece not in (None, "")]
        return " ".join(str(piece) for piece in pieces).strip()
    return _as_list(current) + _as_list(copy.deepcopy(value))


def merge_mappings(current: Any, value: Any) -> Any:
    """Shallow-merge two dicts; anything else is replaced by ``value``."""
    if isinstance(current, dict) and isinstance(value, dict):
        return {**current, **copy.deepcopy(value)}
    return copy.deepcopy(value)


def merge_values(
    current: Any,
    value: Any,
    strategy: Union[MergeStrategy, str],
    field_schema: Optional[FieldSchema] = None,
) -> Any:
    """Combine ``current`` and ``value`` according to ``strategy``.

    Raises:
        ValueError: for an unknown strategy.
    """
    strategy = MergeStrategy(strategy)
    if strategy == MergeStrategy.APPEND:
        return append_values(current, value, field_schema)
    if strategy == MergeStrategy.MERGE:
        return merge_mappings(current, value)
    return copy.deepcopy(value)
