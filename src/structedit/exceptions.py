"""Exception types raised by structedit.

Validation problems and repaired corruption are reported through result
models, not exceptions. The classes below cover caller mistakes and
unsupported operations.
"""

from typing import Optional


class StructEditError(Exception):
    """Base class for all structedit errors."""


class FieldPathError(StructEditError, ValueError):
    """A field path is malformed or cannot be applied to a document."""


class InvalidFieldUpdateError(StructEditError, ValueError):
    """A proposed field update was rejected before touching the document."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class ChangeNotFoundError(StructEditError, LookupError):
    """No change with the given id exists in the tracker."""


class RevertNotImplementedError(StructEditError, NotImplementedError):
    """Reverting a tracked change is not supported yet."""


class PersistenceError(StructEditError):
    """The metadata store rejected a write."""
