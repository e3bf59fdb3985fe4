"""Field path resolution for nested section documents.

Reads, writes and deletes values inside plain nested ``dict``/``list``
documents using dot/bracket paths such as ``assessment_results.domains.
articulation.strengths`` or ``standardized_tests[0].score``, and checks paths
against a :class:`SectionSchema`.

Write operations are copy-on-write: the document passed in is never mutated,
a new document is returned instead.
"""

import copy
import re
from typing import Any, Optional

from structedit.exceptions import FieldPathError
from structedit.models import (
    FieldPathValidationResult,
    FieldSchema,
    FieldType,
    SectionSchema,
)

from .paths import PathPart, format_path, parse_field_path

# Distinguishes "no value at this path" from an explicit None.
_MISSING = object()


def _new_container(next_part: PathPart) -> Any:
    return [] if next_part.is_index else {}


def _pad(sequence: list, index: int) -> None:
    while len(sequence) <= index:
        sequence.append(None)


class FieldPathResolver:
    """Path-addressed access to section documents."""

    def get_field_value(self, document: Any, path: str, default: Any = None) -> Any:
        """Get the value at ``path``, or ``default`` when it cannot be reached.

        Never raises: malformed paths, type mismatches along the way and
        out-of-range indices all yield ``default``.
        """
        if document is None or not path:
            return default
        try:
            parts = parse_field_path(path)
        except FieldPathError:
            return default

        current = document
        for part in parts:
            if current is None:
                return default
            if part.is_index:
                if not isinstance(current, list) or part.index >= len(current):
                    return default
                current = current[part.index]
            else:
                if not isinstance(current, dict) or part.key not in current:
                    return default
                current = current[part.key]
        return current

    def set_field_value(self, document: Any, path: str, value: Any) -> Any:
        """Return a copy of ``document`` with ``value`` written at ``path``.

        Missing intermediate containers are created (a list when the next
        part is an index, a dict otherwise). Writing past the end of a list
        pads the gap with ``None``.

        Raises:
            FieldPathError: if the path is empty or malformed, or if it
                requires indexing into a non-list or keying into a non-dict.
        """
        parts = parse_field_path(path)
        result = copy.deepcopy(document) if document is not None else {}
        current = result

        for i, part in enumerate(parts[:-1]):
            next_part = parts[i + 1]
            if part.is_index:
                if not isinstance(current, list):
                    raise FieldPathError(
                        f'Expected array at path segment "{format_path(parts[: i + 1])}"'
                    )
                _pad(current, part.index)
                if current[part.index] is None:
                    current[part.index] = _new_container(next_part)
                current = current[part.index]
            else:
                if not isinstance(current, dict):
                    raise FieldPathError(
                        f'Expected object at path segment "{format_path(parts[: i + 1])}"'
                    )
                if current.get(part.key) is None:
                    current[part.key] = _new_container(next_part)
                current = current[part.key]

        last = parts[-1]
        if last.is_index:
            if not isinstance(current, list):
                raise FieldPathError(f'Expected array at final path segment of "{path}"')
            _pad(current, last.index)
            current[last.index] = copy.deepcopy(value)
        else:
            if not isinstance(current, dict):
                raise FieldPathError(f'Expected object at final path segment of "{path}"')
            current[last.key] = copy.deepcopy(value)
        return result

    def has_field_path(self, document: Any, path: str) -> bool:
        """Check if ``path`` resolves in the document (an explicit None counts)."""
        return self.get_field_value(document, path, _MISSING) is not _MISSING

    def delete_field_path(self, document: Any, path: str) -> Any:
        """Return a copy of ``document`` without the value at ``path``.

        List elements are removed and later elements shift down. A path that
        does not exist (or does not parse) leaves the copy unchanged.
        """
        if document is None:
            return None
        result = copy.deepcopy(document)
        try:
            parts = parse_field_path(path)
        except FieldPathError:
            return result

        current = result
        for part in parts[:-1]:
            if part.is_index:
                if not isinstance(current, list) or part.index >= len(current):
                    return result
                current = current[part.index]
            else:
                if not isinstance(current, dict) or part.key not in current:
                    return result
                current = current[part.key]

        last = parts[-1]
        if last.is_index:
            if isinstance(current, list) and last.index < len(current):
                del current[last.index]
        elif isinstance(current, dict):
            current.pop(last.key, None)
        return result

    def get_field_schema(self, path: str, schema: SectionSchema) -> Optional[FieldSchema]:
        """Return the schema node ``path`` points at, or None.

        Index parts select an element of the value and are skipped, so
        ``tests.0.name`` and ``tests.name`` name the same schema node. Keys
        descend into object children (or array item children).
        """
        if not path or schema is None or not schema.fields:
            return None
        try:
            parts = parse_field_path(path)
        except FieldPathError:
            return None

        fields = schema.fields
        current: Optional[FieldSchema] = None
        for part in parts:
            if part.is_index:
                continue

            if current is not None:
                if not current.children:
                    return None
                fields = current.children

            current = next((field for field in fields if field.key == part.key), None)
            if current is None:
                return None
        return current

    def validate_field_path_detailed(
        self, path: str, schema: SectionSchema
    ) -> FieldPathValidationResult:
        """Check ``path`` against ``schema`` and explain any failure."""
        if not path:
            return FieldPathValidationResult(is_valid=False, errors=["Field path cannot be empty"])
        if schema is None or not schema.fields:
            return FieldPathValidationResult(
                is_valid=False, errors=["Schema is invalid or missing fields"]
            )

        try:
            parts = parse_field_path(path)
        except FieldPathError as exc:
            return FieldPathValidationResult(is_valid=False, errors=[str(exc)])

        segments = [str(part) for part in parts]
        field_schema = self.get_field_schema(path, schema)
        if field_schema is None:
            return FieldPathValidationResult(
                is_valid=False,
                errors=[f'Field path "{path}" does not exist in schema'],
                path_segments=segments,
            )
        return FieldPathValidationResult(
            is_valid=True, field_schema=field_schema, path_segments=segments
        )

    def validate_field_path(self, path: str, schema: SectionSchema) -> bool:
        """Check if ``path`` is declared by ``schema``."""
        return self.validate_field_path_detailed(path, schema).is_valid


field_path_resolver = FieldPathResolver()

get_field_value = field_path_resolver.get_field_value
set_field_value = field_path_resolver.set_field_value
has_field_path = field_path_resolver.has_field_path
delete_field_path = field_path_resolver.delete_field_path
get_field_schema = field_path_resolver.get_field_schema
validate_field_path = field_path_resolver.validate_field_path


# Utilities over schema-declared paths


def get_all_field_paths(schema: SectionSchema) -> list[str]:
    """List every path the schema declares.

    Object fields recurse into their children. Array fields also list an
    example element path ``<path>.0``.
    """
    paths: list[str] = []

    def collect(fields: list[FieldSchema], prefix: str) -> None:
        for field in fields:
            current = f"{prefix}.{field.key}" if prefix else field.key
            paths.append(current)
            if field.type == FieldType.OBJECT and field.children:
                collect(field.children, current)
            elif field.type == FieldType.ARRAY:
                paths.append(f"{current}.0")
                if field.children:
                    collect(field.children, f"{current}.0")

    if schema is not None:
        collect(schema.fields, "")
    return paths


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality; booleans never equal numbers."""
    if a is b:
        return True
    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[key], b[key]) for key in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, (dict, list, tuple)) or isinstance(b, (dict, list, tuple)):
        return False
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


def get_changed_paths(old_document: Any, new_document: Any, schema: SectionSchema) -> list[str]:
    """List schema paths whose values differ between two documents.

    A path missing on one side and holding None on the other counts as changed.
    """
    changed = []
    for path in get_all_field_paths(schema):
        old_value = field_path_resolver.get_field_value(old_document, path, _MISSING)
        new_value = field_path_resolver.get_field_value(new_document, path, _MISSING)
        if not deep_equal(old_value, new_value):
            changed.append(path)
    return changed


_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")


def _format_prose_value(value: Any) -> str:
    if value is _MISSING or value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, list):
        return ", ".join(_format_prose_value(item) for item in value if item is not None)
    if isinstance(value, dict):
        return ", ".join(f"{key}: {_format_prose_value(item)}" for key, item in value.items())
    return str(value)


def render_prose(schema: SectionSchema, document: Any) -> str:
    """Fill the schema's ``prose_template`` placeholders from the document."""
    if not schema.prose_template:
        return ""

    def substitute(match: re.Match) -> str:
        value = field_path_resolver.get_field_value(document, match.group(1).strip(), _MISSING)
        return _format_prose_value(value)

    return _PLACEHOLDER.sub(substitute, schema.prose_template)
