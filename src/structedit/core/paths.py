"""Field path parsing.

A path is a dot-separated list of segments. A segment is a mapping key
(``name``), an array index (``0``), or a key followed by an index in one
segment (``name[0]``), which expands into two parts.
"""

import re
from typing import NamedTuple, Optional

from structedit.exceptions import FieldPathError

_INDEX_SEGMENT = re.compile(r"^(\d+)$")
_KEYED_INDEX_SEGMENT = re.compile(r"^(.+)\[(\d+)\]$")


class PathPart(NamedTuple):
    """One logical step of a path: a key or an index, never both."""

    key: Optional[str] = None
    index: Optional[int] = None

    @property
    def is_index(self) -> bool:
        return self.index is not None

    def __str__(self) -> str:
        return f"[{self.index}]" if self.is_index else str(self.key)


def parse_field_path(path: str) -> list[PathPart]:
    """Split a path into key and index parts.

    Raises:
        FieldPathError: for an empty path or a path with an empty segment.
    """
    if not isinstance(path, str) or not path:
        raise FieldPathError("Field path cannot be empty")

    parts: list[PathPart] = []
    for segment in path.split("."):
        if not segment:
            raise FieldPathError(f'Field path "{path}" contains an empty segment')

        if _INDEX_SEGMENT.match(segment):
            parts.append(PathPart(index=int(segment)))
            continue

        keyed = _KEYED_INDEX_SEGMENT.match(segment)
        if keyed:
            parts.append(PathPart(key=keyed.group(1)))
            parts.append(PathPart(index=int(keyed.group(2))))
        else:
            parts.append(PathPart(key=segment))
    return parts


def format_path(parts: list[PathPart]) -> str:
    """Rebuild a readable path from parts, e.g. ``items.[2].name``."""
    return ".".join(str(part) for part in parts)
