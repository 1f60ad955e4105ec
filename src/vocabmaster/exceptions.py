"""Exceptions raised by the review engine."""


class VocabMasterError(Exception):
    """Base class for review engine errors."""


class ValidationError(VocabMasterError, ValueError):
    """Raised when a batch completion payload is malformed."""


class SyncError(VocabMasterError):
    """Raised when the authoritative progress save fails."""


class TransportError(SyncError):
    """The batch could not be delivered to the authoritative collaborator."""


class BatchTimeoutError(SyncError):
    """The batch transaction did not finish before its deadline."""


class AuthorizationError(SyncError):
    """The learner is not authorized to save progress. Never retried."""
