"""
Pydantic models for writable book fields.

``BookPayload`` is the only place the field rules live. The API checks
incoming payloads against it, the book store re-checks the merged record
against it before every write, and the MongoDB collection validator is
generated from its JSON schema.
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from .exceptions import ValidationFailed
from .models import FieldError, Genre

logger = structlog.get_logger(__name__)

MIN_YEAR = 1000

TITLE_MAX_LENGTH = 200
AUTHOR_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 1000

# Stored years have no leading zeros, so they sort correctly as text
YEAR_PATTERN = r"^([1-9][0-9]*)?$"

REQUIRED_MESSAGES = {
    "title": "Book title is required",
    "author": "Author name is required",
    "genre": "Genre is required",
}


def max_year() -> int:
    """Latest accepted publication year (next calendar year)."""
    return datetime.now().year + 1


def _not_a_string(label: str) -> PydanticCustomError:
    return PydanticCustomError("string_type", f"{label} must be a string")


def _clean_text(
    value: Any,
    label: str,
    field: Optional[str] = None,
    max_length: Optional[int] = None,
    too_long_message: str = "",
    trim: bool = True,
) -> str:
    """Trim a text value and apply the required and length rules."""
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise _not_a_string(label)
    if trim:
        value = value.strip()
    if not value and field in REQUIRED_MESSAGES:
        raise PydanticCustomError("required", REQUIRED_MESSAGES[field])
    if max_length is not None and len(value) > max_length:
        raise PydanticCustomError("too_long", too_long_message)
    return value


class BookPayload(BaseModel):
    """Writable fields of a book, trimmed and checked in a single pass."""

    model_config = ConfigDict(extra="ignore")

    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    author: str = Field(..., min_length=1, max_length=AUTHOR_MAX_LENGTH)
    year: str = Field(default="", pattern=YEAR_PATTERN, description="Publication year as text")
    genre: Genre
    image_path: str = Field(default="", alias="imagePath", description="URL of the cover image")
    description: str = Field(default="", max_length=DESCRIPTION_MAX_LENGTH)

    @field_validator("title", mode="before")
    @classmethod
    def check_title(cls, v):
        return _clean_text(v, "Title", "title", TITLE_MAX_LENGTH,
                           f"Title cannot be more than {TITLE_MAX_LENGTH} characters")

    @field_validator("author", mode="before")
    @classmethod
    def check_author(cls, v):
        return _clean_text(v, "Author name", "author", AUTHOR_MAX_LENGTH,
                           f"Author name cannot be more than {AUTHOR_MAX_LENGTH} characters")

    @field_validator("year", mode="before")
    @classmethod
    def check_year(cls, v):
        """Accept text or integer years in [1000, next year]; empty means unknown."""
        if isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        v = _clean_text(v, "Year")
        if not v:
            return v
        if not (v.isascii() and v.isdigit()) or not MIN_YEAR <= int(v) <= max_year():
            raise PydanticCustomError("year_range", "Year must be between 1000 and next year")
        return str(int(v))

    @field_validator("genre", mode="before")
    @classmethod
    def check_genre(cls, v):
        v = _clean_text(v, "Genre", "genre")
        if v not in Genre.values():
            raise PydanticCustomError("genre", "Invalid genre selected")
        return v

    @field_validator("image_path", mode="before")
    @classmethod
    def check_image_path(cls, v):
        return _clean_text(v, "Image path", trim=False)

    @field_validator("description", mode="before")
    @classmethod
    def check_description(cls, v):
        return _clean_text(v, "Description", max_length=DESCRIPTION_MAX_LENGTH,
                           too_long_message=f"Description cannot be more than {DESCRIPTION_MAX_LENGTH} characters")


class BookPatch(BookPayload):
    """Partial update: only the fields present are checked."""

    title: Optional[str] = None
    author: Optional[str] = None
    genre: Optional[Genre] = None


WRITABLE_FIELDS = [field.alias or name for name, field in BookPayload.model_fields.items()]


def field_errors(error: ValidationError) -> List[FieldError]:
    """Map every pydantic error entry to a FieldError, keeping field order."""
    errors: List[FieldError] = []
    for entry in error.errors():
        field = ".".join(str(part) for part in entry["loc"]) or "record"
        message = entry["msg"]
        if entry["type"] == "missing":
            message = REQUIRED_MESSAGES.get(field, message)
        errors.append(FieldError(field=field, message=message))
    return errors


def validate_book(payload: Any, partial: bool = False, stage: str = "request") -> Dict[str, Any]:
    """
    Check a book payload and collect every violation.

    Args:
        payload: Mapping of field name to raw value
        partial: Only check fields present in the payload (updates)
        stage: Reported on failure, "request" or "store"

    Returns:
        Cleaned values keyed by their public names, for present fields only

    Raises:
        ValidationFailed: one entry per violated field
    """
    model = BookPatch if partial else BookPayload
    try:
        book = model.model_validate(payload)
    except ValidationError as e:
        raise ValidationFailed(field_errors(e), stage=stage) from e

    if isinstance(payload, Mapping):
        ignored = [key for key in payload if key not in WRITABLE_FIELDS]
        if ignored:
            logger.debug("Ignoring non-writable payload keys", keys=ignored)

    return book.model_dump(mode="json", by_alias=True, exclude_unset=True)


def collection_schema() -> Dict[str, Any]:
    """Translate the BookPayload JSON schema into a MongoDB ``$jsonSchema``."""
    schema = BookPayload.model_json_schema()
    definitions = schema.get("$defs", {})
    properties: Dict[str, Any] = {}

    for name, prop in schema["properties"].items():
        refs = [prop["$ref"]] if "$ref" in prop else [item["$ref"] for item in prop.get("allOf", []) if "$ref" in item]
        if refs:
            properties[name] = {"enum": list(definitions[refs[0].rsplit("/", 1)[-1]]["enum"])}
            continue
        fragment: Dict[str, Any] = {"bsonType": "string"}
        for key in ("minLength", "maxLength", "pattern"):
            if key in prop:
                fragment[key] = prop[key]
        properties[name] = fragment

    return {
        "bsonType": "object",
        "required": list(schema.get("required", [])),
        "properties": properties,
    }
