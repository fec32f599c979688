"""
Field signing exceptions

Errors that abort a whole operation. Per-field problems (bad rules, bad
formulas, a corrupt signature image) never raise; they are logged and
resolved to safe defaults where they happen.
"""


class FieldSignError(Exception):
    """Base exception for all fieldsign errors."""
    pass


class RenderError(FieldSignError):
    """Raised when a document cannot be rendered at all."""
    pass


class PageOutOfRangeError(RenderError):
    """
    Raised when a field is placed on a page the document does not have.

    Rendering stops before anything is painted.
    """
    def __init__(self, field_id, page_number: int, page_count: int):
        self.field_id = field_id
        self.page_number = page_number
        self.page_count = page_count
        super().__init__(
            f"field {field_id} is placed on page {page_number}, "
            f"but the document has {page_count} page(s)"
        )


class StorageError(FieldSignError):
    """
    Raised when an object store call fails permanently.

    ``retryable`` records whether the last failure was of a transient kind
    (the retry budget ran out) or a permanent one (no retry was attempted).
    """
    def __init__(self, message: str, key: str = None, retryable: bool = False, attempts: int = 1):
        self.key = key
        self.retryable = retryable
        self.attempts = attempts
        super().__init__(message)


class ValidationFailed(FieldSignError):
    """Raised when submitted field values do not pass validation."""
    def __init__(self, errors: dict):
        self.errors = errors
        super().__init__(f"{len(errors)} field(s) failed validation")
