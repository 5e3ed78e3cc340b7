"""
Memories Backend: Custom Exception Hierarchy
=============================================

What:  Application-specific exceptions for every failure the editor and its
       collaborators can report.
How:   Each exception carries a user-facing message and an optional context
       dict. Global handlers in main.py turn them into JSON error responses.
Who:   Raised by the canvas core and by services; caught by the handlers or
       by any interactive caller of the PageController.

Exception Hierarchy:
    MemoriesError (base)
    ├── ValidationError          → 400 Bad Request
    ├── DecodeError              → 400 Bad Request (image bytes unreadable)
    ├── FlattenError             → 422 Unprocessable Entity
    ├── NotFoundError            → 404 Not Found
    ├── SessionClosedError       → 409 Conflict
    ├── FileStorageError         → 500 Internal Server Error
    ├── DatabaseError            → 500 Internal Server Error
    ├── TransmissionError        → 503 Service Unavailable (retryable)
    └── RateLimitExceededError   → 429 Too Many Requests

None of these is fatal to the process: every error path leaves the document
in an editable state.
"""

from typing import Any, Dict, Optional


class MemoriesError(Exception):
    """
    Base exception for all Memories application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(MemoriesError):
    """
    Raised when caller input fails validation.

    When:    Unsupported upload type, oversize file, malformed color, a
             viewport with no usable area.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class DecodeError(MemoriesError):
    """
    Raised when image bytes cannot be decoded to a usable natural size.

    When:    Adding an image whose bytes are empty, corrupt, or whose decoded
             size is zero. The add-image operation is aborted and the
             document is left untouched.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        message: str = "The image could not be decoded",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


# The canvas item API names this failure InvalidImageError.
InvalidImageError = DecodeError


class FlattenError(MemoriesError):
    """
    Raised when a page cannot be rasterized.

    When:    Zero, negative, non-finite or oversized render bounds, or the
             encoder rejects the composed bitmap. The caller must not go on
             to transmission.
    HTTP:    422 Unprocessable Entity
    """

    def __init__(
        self,
        message: str = "The page could not be flattened to an image",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(MemoriesError):
    """
    Raised when a requested resource does not exist.

    When:    Loading a page, template or stored file that is not there.
             Item ids are NOT covered: mutating or removing an absent item
             is a silent no-op.
    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class SessionClosedError(MemoriesError):
    """
    Raised when a mutation targets an editing session that was closed.

    When:    The editor was dismissed (or never opened a document) and a late
             caller still tries to change the page.
    HTTP:    409 Conflict
    """

    def __init__(
        self,
        message: str = "The editing session is no longer active",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class FileStorageError(MemoriesError):
    """
    Raised when file system operations fail.

    When:    Disk full, permission denied, directory not writable, I/O error.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(MemoriesError):
    """
    Raised when database operations fail unexpectedly.

    When:    Loading or saving a page document, inserting a letter row.
             A failed save is always reported to the caller; it is never
             treated as a silent success.
    HTTP:    500 Internal Server Error (generic message, details logged)
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class TransmissionError(MemoriesError):
    """
    Raised when sending a flattened letter fails.

    When:    Storage write or letter insert failed after retries, or the send
             exceeded the transmission timeout.
    HTTP:    503 Service Unavailable

    The failure is retryable by the user; the underlying message is shown in
    a dismissible error.
    """

    def __init__(
        self,
        message: str = "The letter could not be sent. Please try again.",
        retryable: bool = True,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["retryable"] = retryable
        super().__init__(message=message, context=ctx)
        self.retryable = retryable


class RateLimitExceededError(MemoriesError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
