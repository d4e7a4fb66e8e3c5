"""
Tests for the book endpoints of the FastAPI application.
"""

from unittest.mock import AsyncMock, patch

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from api.main import app
from catalog.database import BookStore
from catalog.exceptions import BookNotFound, MalformedIdentifier, StoreUnavailable, ValidationFailed
from catalog.models import FieldError, StatsSummary

from conftest import OWNER


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def mock_book_store():
    """Mock book store."""
    mock = AsyncMock(spec=BookStore)
    with patch('api.main.book_store', mock):
        yield mock


def test_health_check_without_store(client):
    """Test health check endpoint before the store is connected."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["database_status"] == "unavailable"
    assert "timestamp" in data
    assert "version" in data


def test_health_check_with_store(client, mock_book_store):
    """Test health check endpoint with a healthy store."""
    mock_book_store.health_check.return_value = {"status": "healthy"}

    response = client.get("/health")

    assert response.json()["status"] == "healthy"


def test_list_books(client, mock_book_store, book_record):
    """Test listing without filters."""
    mock_book_store.list.return_value = [book_record(title="A"), book_record(title="B")]

    response = client.get("/books")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["count"] == 2
    assert [book["title"] for book in data["data"]] == ["A", "B"]
    assert set(data["data"][0]) >= {"id", "imagePath", "ownerId", "createdAt", "updatedAt", "formattedYear"}
    mock_book_store.list.assert_awaited_once_with(OWNER)
    mock_book_store.search.assert_not_awaited()


def test_search_books(client, mock_book_store, book_record):
    """Test listing with query and genre parameters."""
    mock_book_store.search.return_value = [book_record()]

    response = client.get("/books?query=tolkien&genre=Fantasy")

    assert response.status_code == 200
    assert response.json()["count"] == 1
    mock_book_store.search.assert_awaited_once_with(OWNER, query="tolkien", genre="Fantasy")


def test_get_book(client, mock_book_store, book_record):
    """Test get book by ID endpoint."""
    record = book_record()
    mock_book_store.get.return_value = record

    response = client.get(f"/books/{record.id}")

    assert response.status_code == 200
    assert response.json()["data"]["title"] == "The Hobbit"
    mock_book_store.get.assert_awaited_once_with(record.id, OWNER)


def test_book_not_found(client, mock_book_store):
    """Test book not found scenario."""
    mock_book_store.get.side_effect = BookNotFound()

    response = client.get(f"/books/{ObjectId()}")

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Book not found"}


def test_book_malformed_id(client, mock_book_store):
    """Test malformed identifier scenario."""
    mock_book_store.get.side_effect = MalformedIdentifier()

    response = client.get("/books/not-an-id")

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid book ID"


def test_create_book(client, mock_book_store, book_record):
    """Test a valid create."""
    mock_book_store.create.return_value = book_record(title="Dune", genre="Science")

    response = client.post("/books", json={
        "title": "  Dune ", "author": "Frank Herbert", "genre": "Science", "ownerId": "mallory",
    })

    assert response.status_code == 201
    data = response.json()
    assert data["message"] == "Book created successfully"
    assert data["data"]["title"] == "Dune"
    mock_book_store.create.assert_awaited_once_with(
        {"title": "Dune", "author": "Frank Herbert", "genre": "Science"}, OWNER,
    )


def test_create_book_normalises_year(client, mock_book_store, book_record):
    """Test that a zero-padded year reaches the store in canonical form."""
    mock_book_store.create.return_value = book_record(year="1999")

    response = client.post("/books", json={
        "title": "Dune", "author": "Frank Herbert", "genre": "Science", "year": "01999",
    })

    assert response.status_code == 201
    assert mock_book_store.create.call_args[0][0]["year"] == "1999"


def test_create_book_lists_every_missing_field(client, mock_book_store):
    """Test that all missing required fields are reported at once."""
    response = client.post("/books", json={"year": "1999"})

    assert response.status_code == 400
    data = response.json()
    assert data["success"] is False
    assert data["error"] == "Validation failed"
    assert [detail["field"] for detail in data["details"]] == ["title", "author", "genre"]
    mock_book_store.create.assert_not_awaited()


def test_create_book_store_validation(client, mock_book_store):
    """Test that store-level rejections use the same error shape."""
    mock_book_store.create.side_effect = ValidationFailed(
        [FieldError(field="genre", message="Invalid genre selected")], stage="store",
    )

    response = client.post("/books", json={"title": "Dune", "author": "Frank Herbert", "genre": "Science"})

    assert response.status_code == 400
    assert response.json()["details"] == [{"field": "genre", "message": "Invalid genre selected"}]


def test_create_book_rejects_non_object_body(client, mock_book_store):
    """Test that a JSON array body is a bad request."""
    response = client.post("/books", json=[{"title": "Dune"}])

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_update_book_partial(client, mock_book_store, book_record):
    """Test that a partial update only checks and forwards given fields."""
    record = book_record(description="new text")
    mock_book_store.update.return_value = record

    response = client.put(f"/books/{record.id}", json={"description": "new text"})

    assert response.status_code == 200
    assert response.json()["message"] == "Book updated successfully"
    mock_book_store.update.assert_awaited_once_with(record.id, {"description": "new text"}, OWNER)


def test_update_book_invalid_year(client, mock_book_store):
    """Test that present fields are validated on update."""
    response = client.put(f"/books/{ObjectId()}", json={"year": "999"})

    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "year"
    mock_book_store.update.assert_not_awaited()


def test_update_book_not_found(client, mock_book_store):
    """Test update of a missing record."""
    mock_book_store.update.side_effect = BookNotFound()

    response = client.put(f"/books/{ObjectId()}", json={"title": "x"})

    assert response.status_code == 404


def test_delete_book_twice(client, mock_book_store, book_record):
    """Test that deleting twice yields 200 then 404."""
    record = book_record()
    mock_book_store.delete.side_effect = [record, BookNotFound()]

    first = client.delete(f"/books/{record.id}")
    second = client.delete(f"/books/{record.id}")

    assert first.status_code == 200
    assert first.json() == {"success": True, "message": "Book deleted successfully"}
    assert second.status_code == 404


def test_stats_empty(client, mock_book_store):
    """Test stats endpoint with zero records."""
    mock_book_store.stats.return_value = StatsSummary()

    response = client.get("/books/stats/summary")

    assert response.status_code == 200
    assert response.json()["data"] == {"totalCount": 0, "genreStats": [], "yearStats": []}
    mock_book_store.stats.assert_awaited_once_with(OWNER)


def test_store_failure_is_opaque(client, mock_book_store):
    """Test that backend failures do not leak details."""
    mock_book_store.list.side_effect = StoreUnavailable()

    response = client.get("/books")

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Storage backend unavailable"}


def test_store_not_initialised(client):
    """Test requests before the store is connected."""
    with patch('api.main.book_store', None):
        response = client.get("/books")

    assert response.status_code == 500
    assert response.json()["success"] is False
