"""
Custom Exceptions Module.

Only I/O boundaries raise: parsers degrade to defaults and resolvers
return None. Everything raised here is caught by the session controller
or the batch processor and turned into a user-visible message.

Exception Hierarchy:
    InvoiceReviewError (base)
    ├── InputError
    │   ├── UnsupportedFileTypeError
    │   └── CorruptedFileError
    ├── ExtractionError
    │   └── ExtractionServiceError
    ├── StorageError
    │   └── BlobNotFoundError
    ├── RenderError
    ├── PersistenceError
    │   ├── DatabaseError
    │   └── ExportError
    └── SessionStateError
"""


class InvoiceReviewError(Exception):
    """
    Base exception for all invoice review errors.

    Attributes:
        message: Human-readable error message.
        details: Optional dictionary with additional error details.
    """

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# INPUT ERRORS
# =============================================================================

class InputError(InvoiceReviewError):
    """Base exception for input handling errors."""
    pass


class UnsupportedFileTypeError(InputError):
    """
    Raised when an uploaded file has an extension the extraction service
    does not accept.

    Example:
        >>> raise UnsupportedFileTypeError(".doc", [".pdf", ".png"])
    """

    def __init__(self, file_type: str, supported_types: list):
        message = f"Unsupported file type: '{file_type}'"
        details = {"file_type": file_type, "supported_types": supported_types}
        super().__init__(message, details)


class CorruptedFileError(InputError):
    """Raised when a document cannot be opened."""

    def __init__(self, filepath: str, reason: str = None):
        message = f"Corrupted or unreadable file: {filepath}"
        details = {"filepath": filepath, "reason": reason}
        super().__init__(message, details)


# =============================================================================
# EXTRACTION ERRORS
# =============================================================================

class ExtractionError(InvoiceReviewError):
    """Base exception for document extraction errors."""
    pass


class ExtractionServiceError(ExtractionError):
    """Raised when the extraction service rejects or fails a document."""

    def __init__(self, filename: str, reason: str = None, status_code: int = None):
        message = f"Extraction failed for: {filename}"
        details = {"filename": filename, "reason": reason}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.filename = filename
        self.reason = reason


# =============================================================================
# STORAGE / RENDERING ERRORS
# =============================================================================

class StorageError(InvoiceReviewError):
    """Base exception for blob storage errors."""
    pass


class BlobNotFoundError(StorageError):
    """Raised when a blob path does not resolve to a stored object."""

    def __init__(self, path: str):
        super().__init__(f"Blob not found: {path}", {"path": path})


class RenderError(InvoiceReviewError):
    """Raised when page dimensions cannot be read from a document."""

    def __init__(self, page_number: int, reason: str = None):
        message = f"Could not render page {page_number}"
        super().__init__(message, {"page": page_number, "reason": reason})


# =============================================================================
# PERSISTENCE ERRORS
# =============================================================================

class PersistenceError(InvoiceReviewError):
    """Base exception for record store and export errors."""
    pass


class DatabaseError(PersistenceError):
    """Raised when record store operations fail."""

    def __init__(self, operation: str, reason: str = None):
        message = f"Database operation failed: {operation}"
        details = {"operation": operation, "reason": reason}
        super().__init__(message, details)


class ExportError(PersistenceError):
    """Raised when exporting verified invoices fails."""

    def __init__(self, filepath: str, reason: str = None):
        message = f"Failed to export invoices: {filepath}"
        details = {"filepath": filepath, "reason": reason}
        super().__init__(message, details)


# =============================================================================
# SESSION ERRORS
# =============================================================================

class SessionStateError(InvoiceReviewError):
    """Raised when a review session operation is illegal in the current state."""

    def __init__(self, operation: str, state: str):
        message = f"Cannot {operation} while session is {state}"
        super().__init__(message, {"operation": operation, "state": state})


__all__ = [
    'InvoiceReviewError',
    'InputError',
    'UnsupportedFileTypeError',
    'CorruptedFileError',
    'ExtractionError',
    'ExtractionServiceError',
    'StorageError',
    'BlobNotFoundError',
    'RenderError',
    'PersistenceError',
    'DatabaseError',
    'ExportError',
    'SessionStateError',
]
