"""
Error taxonomy for the book catalog.

Every error carries the HTTP status it maps to and a message that is safe
to show to clients. Backend diagnostics stay in the logs.
"""

from typing import List, Optional

from .models import FieldError


class CatalogError(Exception):
    """Base class for all catalog errors."""

    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationFailed(CatalogError):
    """One or more fields violate the book schema."""

    status_code = 400
    message = "Validation failed"

    def __init__(self, errors: List[FieldError], stage: str = "request"):
        super().__init__()
        self.errors = list(errors)
        self.stage = stage

    def __str__(self) -> str:
        fields = ", ".join(error.field for error in self.errors)
        return f"Validation failed at {self.stage} stage: {fields}"


class NotFound(CatalogError):
    status_code = 404
    message = "Not found"


class BookNotFound(NotFound):
    message = "Book not found"


class ImageNotFound(NotFound):
    message = "Image file not found"


class MalformedIdentifier(CatalogError):
    status_code = 400
    message = "Invalid book ID"


class NoFileProvided(CatalogError):
    status_code = 400
    message = "No image file provided"


class UnsupportedType(CatalogError):
    status_code = 400
    message = "Only image files are allowed!"


class TooLarge(CatalogError):
    status_code = 400
    message = "File too large"


class TooManyFiles(CatalogError):
    status_code = 400
    message = "Too many files. Only one file is allowed."


class WriteFailed(CatalogError):
    status_code = 500
    message = "Failed to save file to disk"


class StoreUnavailable(CatalogError):
    """The backing store failed. The message never includes the cause."""

    status_code = 500
    message = "Storage backend unavailable"
