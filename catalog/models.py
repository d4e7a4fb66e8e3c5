"""
Pydantic models for book records, stored cover images and catalog statistics.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class Genre(str, Enum):
    """Enum for the fixed set of book genres."""
    FICTION = "Fiction"
    NON_FICTION = "Non-fiction"
    BIOGRAPHY = "Biography"
    FANTASY = "Fantasy"
    SCIENCE = "Science"
    ROMANCE = "Romance"
    OTHER = "Other"

    @classmethod
    def values(cls) -> List[str]:
        return [genre.value for genre in cls]


# Genre filter value meaning "do not filter by genre"
ALL_GENRES = "All"


class FieldError(BaseModel):
    """A single field-level violation."""
    field: str = Field(..., description="Name of the offending field")
    message: str = Field(..., description="Human-readable violation message")


class BookRecord(BaseModel):
    """
    A book as stored in the catalog.

    Attributes are snake_case in Python and camelCase on the wire and in
    MongoDB documents.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Unique book identifier")
    title: str = Field(..., description="Book title")
    author: str = Field(..., description="Author name")
    year: str = Field("", description="Publication year, empty when unknown")
    genre: Genre = Field(..., description="Book genre")
    image_path: str = Field("", alias="imagePath", description="Relative URL of the cover image")
    description: str = Field("", description="Free-text description")
    owner_id: str = Field(..., alias="ownerId", description="Owner of the record")
    created_at: datetime = Field(..., alias="createdAt", description="Creation timestamp")
    updated_at: datetime = Field(..., alias="updatedAt", description="Last update timestamp")

    @computed_field(alias="formattedYear")
    @property
    def formatted_year(self) -> str:
        return self.year or "N/A"

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "BookRecord":
        """Build a record from a raw MongoDB document."""
        data = dict(document)
        data["id"] = str(data.pop("_id"))
        data.pop("__v", None)
        for key in ("year", "imagePath", "description"):
            if data.get(key) is None:
                data[key] = ""
        return cls(**data)

    def to_public_dict(self) -> Dict[str, Any]:
        """JSON-ready representation used in API responses."""
        return self.model_dump(mode="json", by_alias=True)


class StoredImage(BaseModel):
    """Result of a successful cover upload."""
    model_config = ConfigDict(populate_by_name=True)

    filename: str = Field(..., description="Generated filename")
    original_name: str = Field(..., alias="originalName", description="Client-side filename")
    size: int = Field(..., ge=0, description="Size in bytes")
    mime_type: str = Field(..., alias="mimeType", description="Image MIME type")
    url: str = Field(..., description="Relative URL the image is served from")
    path: str = Field(..., description="Location of the file on disk")


class ImageInfo(BaseModel):
    """Metadata of an image already on disk."""
    model_config = ConfigDict(populate_by_name=True)

    filename: str
    size: int = Field(..., ge=0)
    mime_type: Optional[str] = Field(None, alias="mimeType")
    url: str
    created_at: datetime = Field(..., alias="createdAt")


class GenreCount(BaseModel):
    genre: str
    count: int


class YearCount(BaseModel):
    year: str
    count: int


class StatsSummary(BaseModel):
    """Read-only aggregation over an owner's records."""
    model_config = ConfigDict(populate_by_name=True)

    total_count: int = Field(0, alias="totalCount")
    genre_stats: List[GenreCount] = Field(default_factory=list, alias="genreStats")
    year_stats: List[YearCount] = Field(default_factory=list, alias="yearStats")
