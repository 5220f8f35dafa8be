"""Exception hierarchy shared across the card studio."""

from __future__ import annotations


class CardStudioError(RuntimeError):
    pass


class ImageLoadError(CardStudioError):
    """The product image could not be fetched or decoded."""


class TextServiceError(CardStudioError):
    """One or more text generation configurations failed.

    ``errors`` maps each configuration name to the message it failed with, in
    the order the configurations were tried.
    """

    def __init__(self, message: str, errors: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.errors = dict(errors or {})


class ValidationError(CardStudioError, ValueError):
    """A record failed validation and was not persisted."""


class StorageError(CardStudioError):
    """A persistence backend call failed."""


class NotFoundError(CardStudioError, LookupError):
    """No record exists with the requested id."""


class ScheduleBusyError(CardStudioError):
    """The schedule is already being run by another worker."""
