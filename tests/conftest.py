"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId

from catalog.database import BookStore
from catalog.images import ImageStore
from catalog.models import BookRecord

OWNER = "default-user"


def make_cursor(documents):
    """Mimic a Motor cursor: chainable sort() and awaitable to_list()."""
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.to_list = AsyncMock(return_value=documents)
    return cursor


@pytest.fixture
def mock_collection():
    """Create a mock Motor collection for testing."""
    collection = MagicMock()
    collection.name = "books"
    collection.find.return_value = make_cursor([])
    collection.aggregate.return_value = make_cursor([])
    collection.find_one = AsyncMock(return_value=None)
    collection.insert_one = AsyncMock()
    collection.find_one_and_update = AsyncMock(return_value=None)
    collection.find_one_and_delete = AsyncMock(return_value=None)
    collection.count_documents = AsyncMock(return_value=0)
    collection.estimated_document_count = AsyncMock(return_value=0)
    collection.create_index = AsyncMock()
    collection.database.create_collection = AsyncMock()
    collection.database.command = AsyncMock(return_value={"ok": 1})
    return collection


@pytest.fixture
def book_store(mock_collection):
    """Book store backed by the mock collection."""
    return BookStore(mock_collection)


@pytest.fixture
def book_document():
    """Factory for raw MongoDB book documents."""
    def _make(**overrides):
        created = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        document = {
            "_id": ObjectId(),
            "title": "The Hobbit",
            "author": "J.R.R. Tolkien",
            "year": "1937",
            "genre": "Fantasy",
            "imagePath": "",
            "description": "There and back again.",
            "ownerId": OWNER,
            "createdAt": created,
            "updatedAt": created,
        }
        document.update(overrides)
        return document
    return _make


@pytest.fixture
def book_record(book_document):
    """Factory for BookRecord instances."""
    def _make(**overrides):
        return BookRecord.from_document(book_document(**overrides))
    return _make


@pytest.fixture
def image_store(tmp_path):
    """Image store writing to a temporary directory with a 5MB limit."""
    return ImageStore(tmp_path / "uploads", max_file_size=5 * 1024 * 1024, url_prefix="/uploads")


@pytest.fixture
def png_bytes():
    """A tiny payload starting with the PNG signature."""
    return b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
