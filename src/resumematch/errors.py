from __future__ import annotations


class ResumeMatchError(Exception):
    """Base class for errors surfaced by the matching core."""


class ValidationError(ResumeMatchError):
    """The caller asked for something the request state does not allow."""


class NotFoundError(ValidationError):
    pass


class ConversionError(ResumeMatchError):
    """Every document-to-text tier was tried and none produced text."""


class StorageError(ResumeMatchError):
    pass


class AnalysisError(ResumeMatchError):
    pass


class AuthError(ResumeMatchError):
    def __init__(self, message: str, *, cooldown_minutes: int | None = None):
        super().__init__(message)
        self.cooldown_minutes = cooldown_minutes
