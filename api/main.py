"""
FastAPI main application for the Book Catalog API.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from fastapi import Body, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException

from api.config import config as api_config
from api.models import BookListResponse, ErrorResponse, HealthResponse, SuccessResponse
from api.owner import resolve_owner_id
from catalog.database import BookStore
from catalog.exceptions import (
    CatalogError, NoFileProvided, StoreUnavailable, TooLarge, TooManyFiles, ValidationFailed,
)
from catalog.images import ImageStore
from catalog.validation import validate_book
from utilities.config import config
from utilities.logger import setup_logging

logger = structlog.get_logger(__name__)

# Multipart field carrying the cover image
IMAGE_FIELD = "image"

# Global services, set up in lifespan
book_store: Optional[BookStore] = None
image_store: Optional[ImageStore] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global book_store, image_store

    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )
    logger.info("Starting Book Catalog API")

    try:
        book_store = await BookStore.connect(
            config.mongodb_url,
            config.mongodb_database,
            config.mongodb_collection,
            timeout_ms=config.mongodb_timeout_ms,
        )
        await book_store.ensure_schema()
    except StoreUnavailable:
        logger.error("Failed to initialise book store")
        raise

    image_store = ImageStore(
        config.get_upload_dir_path(),
        max_file_size=config.max_file_size,
        url_prefix=config.upload_url_prefix,
    )
    logger.info("Image store ready", upload_dir=str(image_store.upload_dir))

    yield

    logger.info("Shutting down Book Catalog API")
    await book_store.disconnect()


app = FastAPI(
    title=api_config.api_title,
    description="""
    A personal book catalog.

    ## Features

    * **Books**: create, list, search, update and delete book records
    * **Statistics**: counts by genre and by publication year
    * **Covers**: upload a cover image and link its URL to a book
    """,
    version=api_config.api_version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=api_config.cors_origins,
    allow_credentials=api_config.cors_allow_credentials,
    allow_methods=api_config.cors_allow_methods,
    allow_headers=api_config.cors_allow_headers,
)


def envelope(model: BaseModel, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=model.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


def get_book_store() -> BookStore:
    if book_store is None:
        logger.error("Book store not initialised")
        raise StoreUnavailable()
    return book_store


def get_image_store() -> ImageStore:
    if image_store is None:
        logger.error("Image store not initialised")
        raise StoreUnavailable()
    return image_store


# Exception handlers
@app.exception_handler(CatalogError)
async def catalog_exception_handler(request: Request, exc: CatalogError):
    """Render catalog errors in the error envelope."""
    details = exc.errors if isinstance(exc, ValidationFailed) else None
    if exc.status_code >= 500:
        logger.error("Request failed", error=type(exc).__name__, path=request.url.path)
    else:
        logger.warning("Request rejected",
                       error=type(exc).__name__,
                       message=exc.message,
                       path=request.url.path)
    return envelope(ErrorResponse(error=exc.message, details=details), exc.status_code)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions."""
    response = envelope(ErrorResponse(error=str(exc.detail)), exc.status_code)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and parameters."""
    logger.warning("Malformed request", path=request.url.path, errors=str(exc.errors()))
    return envelope(ErrorResponse(error="Invalid request"), status.HTTP_400_BAD_REQUEST)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return envelope(
        ErrorResponse(
            error="Internal server error",
            detail=str(exc) if api_config.debug else None,
        ),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


# Health check endpoint
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    db_status = "unavailable"
    if book_store:
        health_info = await book_store.health_check()
        db_status = health_info.get("status", "unknown")

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=api_config.api_version,
        database_status=db_status
    )


# Books endpoints
@app.get("/books", tags=["Books"])
async def list_books(
    query: Optional[str] = None,
    genre: Optional[str] = None,
    owner_id: str = Depends(resolve_owner_id),
    store: BookStore = Depends(get_book_store),
):
    """
    List books, newest first.

    - **query**: Case-insensitive text matched against title or author
    - **genre**: Exact genre, or "All"
    """
    if query or genre:
        books = await store.search(owner_id, query=query, genre=genre)
    else:
        books = await store.list(owner_id)

    return envelope(BookListResponse(
        data=[book.to_public_dict() for book in books],
        count=len(books),
    ))


@app.get("/books/stats/summary", tags=["Statistics"])
async def book_stats(
    owner_id: str = Depends(resolve_owner_id),
    store: BookStore = Depends(get_book_store),
):
    """Total count, counts per genre and counts for the ten latest years."""
    summary = await store.stats(owner_id)
    return envelope(SuccessResponse(data=summary.model_dump(mode="json", by_alias=True)))


@app.get("/books/{book_id}", tags=["Books"])
async def get_book(
    book_id: str,
    owner_id: str = Depends(resolve_owner_id),
    store: BookStore = Depends(get_book_store),
):
    """Get a single book by ID."""
    book = await store.get(book_id, owner_id)
    return envelope(SuccessResponse(data=book.to_public_dict()))


@app.post("/books", tags=["Books"], status_code=status.HTTP_201_CREATED)
async def create_book(
    payload: Dict[str, Any] = Body(...),
    owner_id: str = Depends(resolve_owner_id),
    store: BookStore = Depends(get_book_store),
):
    """Create a book. Every violated field is reported at once."""
    cleaned = validate_book(payload)
    book = await store.create(cleaned, owner_id)
    return envelope(
        SuccessResponse(message="Book created successfully", data=book.to_public_dict()),
        status.HTTP_201_CREATED,
    )


@app.put("/books/{book_id}", tags=["Books"])
async def update_book(
    book_id: str,
    payload: Dict[str, Any] = Body(...),
    owner_id: str = Depends(resolve_owner_id),
    store: BookStore = Depends(get_book_store),
):
    """Update the fields present in the payload."""
    changes = validate_book(payload, partial=True)
    book = await store.update(book_id, changes, owner_id)
    return envelope(SuccessResponse(message="Book updated successfully", data=book.to_public_dict()))


@app.delete("/books/{book_id}", tags=["Books"])
async def delete_book(
    book_id: str,
    owner_id: str = Depends(resolve_owner_id),
    store: BookStore = Depends(get_book_store),
):
    """Delete a book. Its cover image, if any, is kept."""
    await store.delete(book_id, owner_id)
    return envelope(SuccessResponse(message="Book deleted successfully"))


# Upload endpoints
@app.post("/upload/image", tags=["Uploads"])
async def upload_image(request: Request, store: ImageStore = Depends(get_image_store)):
    """
    Upload one cover image in the multipart field "image".

    Returns the generated filename and the URL to store as a book's imagePath.
    """
    form = await request.form()
    try:
        files = [(name, value) for name, value in form.multi_items() if isinstance(value, UploadFile)]
        if len(files) > 1:
            raise TooManyFiles()

        for name, value in form.multi_items():
            if isinstance(value, str) and len(value.encode("utf-8")) > config.max_field_size:
                raise TooLarge(f"Form field '{name}' is too large")

        if not files or files[0][0] != IMAGE_FIELD:
            raise NoFileProvided()

        upload = files[0][1]
        data = await upload.read(store.max_file_size + 1)
        size = upload.size if upload.size is not None else len(data)

        stored = await store.put(data, upload.filename or "", upload.content_type, size)
    finally:
        await form.close()

    return envelope(SuccessResponse(
        message="Image uploaded successfully",
        data=stored.model_dump(mode="json", by_alias=True),
    ))


@app.get("/upload/image/{filename}", tags=["Uploads"])
async def image_info(filename: str, store: ImageStore = Depends(get_image_store)):
    """Size, URL and creation time of an uploaded image."""
    info = await store.info(filename)
    return envelope(SuccessResponse(data=info.model_dump(mode="json", by_alias=True, exclude_none=True)))


@app.delete("/upload/image/{filename}", tags=["Uploads"])
async def delete_image(filename: str, store: ImageStore = Depends(get_image_store)):
    """Delete an uploaded image. Books referencing it are not changed."""
    await store.delete(filename)
    return envelope(SuccessResponse(message="Image deleted successfully"))


@app.get(config.upload_url_prefix + "/{filename}", tags=["Uploads"], include_in_schema=False)
async def serve_image(filename: str, store: ImageStore = Depends(get_image_store)):
    """Serve the bytes of an uploaded image."""
    path = store.path_for(filename)
    return FileResponse(path)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=api_config.debug,
        log_level=api_config.log_level.lower()
    )
