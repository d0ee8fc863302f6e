from __future__ import annotations


class RecipeHubError(Exception):
    """Base class for errors raised by the service layer."""


class BackendError(RecipeHubError):
    """A call into the table store or object store failed.

    The message is the raw message reported by the backend.
    """


class RecordNotFound(RecipeHubError, KeyError):
    """An expected row does not exist."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Record not found."


class ValidationError(RecipeHubError):
    """User input was rejected before any backend call was made."""


class AuthRequired(RecipeHubError):
    """The action needs a signed-in user and there is no active session."""


class PermissionDenied(RecipeHubError):
    """The signed-in user may not perform the action."""


__all__ = [
    "AuthRequired",
    "BackendError",
    "PermissionDenied",
    "RecipeHubError",
    "RecordNotFound",
    "ValidationError",
]
