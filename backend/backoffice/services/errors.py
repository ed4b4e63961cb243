# Overview: Domain errors raised by the document write path.

"""
Document error taxonomy.

Every error raised synchronously by the write path derives from
DocumentError and carries a stable `code` the HTTP layer maps to a status.
Cache invalidation never raises; it logs instead.
"""


class DocumentError(Exception):
    """Base class for document write-path errors."""
    code = "DOCUMENT_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class DocumentNotFound(DocumentError):
    code = "NOT_FOUND"


class SequenceGenerationFailure(DocumentError):
    """No unique display id could be produced within the retry bound."""
    code = "SEQUENCE_GENERATION_FAILED"


class NameResolutionExhausted(DocumentError):
    """Suffix search hit the configured bound without finding a free name."""
    code = "NAME_RESOLUTION_EXHAUSTED"


class StaleWriteConflict(DocumentError):
    """The client edited a version of the document that is no longer current."""
    code = "STALE_WRITE"

    DEFAULT_MESSAGE = "This record was modified by another user. Please refresh and try again."

    def __init__(self, message: str | None = None, details: dict | None = None):
        super().__init__(message or self.DEFAULT_MESSAGE, details)


class ReconciliationIntegrityError(DocumentError):
    """Incoming child list references foreign rows or repeats an id."""
    code = "RECONCILIATION_INTEGRITY"


class InvalidStatusTransition(DocumentError):
    code = "INVALID_TRANSITION"


class PartialUpdateFailure(DocumentError):
    """A storage error interrupted a write; the transaction was rolled back."""
    code = "UPDATE_FAILED"
