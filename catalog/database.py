"""
MongoDB book store for async operations.
Handles connection, indexing, and CRUD, search and statistics for book records.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import CollectionInvalid, OperationFailure, PyMongoError

from .exceptions import BookNotFound, MalformedIdentifier, StoreUnavailable, ValidationFailed
from .models import ALL_GENRES, BookRecord, FieldError, GenreCount, StatsSummary, YearCount
from .validation import collection_schema, validate_book

logger = structlog.get_logger(__name__)

# MongoDB error code for a write rejected by the collection validator
DOCUMENT_VALIDATION_FAILURE = 121

NEWEST_FIRST = [("createdAt", DESCENDING), ("_id", DESCENDING)]

YEAR_STATS_LIMIT = 10


def _now() -> datetime:
    return datetime.now(timezone.utc)


def parse_object_id(book_id: str) -> ObjectId:
    """Convert a client identifier, raising MalformedIdentifier when invalid."""
    if not isinstance(book_id, str) or not ObjectId.is_valid(book_id):
        raise MalformedIdentifier()
    return ObjectId(book_id)


def store_validation_errors(error: OperationFailure) -> List[FieldError]:
    """
    Extract per-field details from a document validation failure.

    Inserts report it as a WriteError and findAndModify as an
    OperationFailure. Both carry the server reply in ``details``.

    MongoDB 5+ reports the failing properties under
    ``errInfo.details.schemaRulesNotSatisfied``. Older servers send no
    details, in which case a single record-level error is returned.
    """
    details = (error.details or {}).get("errInfo", {}).get("details", {})
    errors: List[FieldError] = []

    for rule in details.get("schemaRulesNotSatisfied", []):
        for prop in rule.get("propertiesNotSatisfied", []):
            errors.append(FieldError(
                field=prop.get("propertyName", "record"),
                message=prop.get("description") or "Value rejected by the book store",
            ))
        for missing in rule.get("missingProperties", []):
            errors.append(FieldError(field=missing, message=f"{missing} is required"))

    if not errors:
        errors.append(FieldError(field="record", message="Record rejected by the book store"))
    return errors


class BookStore:
    """
    Async MongoDB store for book records.

    Every read and aggregation is scoped by an explicit owner id supplied by
    the caller. Writes rely on MongoDB's single-document atomicity only.
    """

    def __init__(self, collection: Optional[AsyncIOMotorCollection] = None):
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = collection.database if collection is not None else None
        self.collection = collection

    @classmethod
    async def connect(
        cls,
        connection_url: str,
        database_name: str,
        collection_name: str,
        timeout_ms: int = 5000,
    ) -> "BookStore":
        """
        Connect to MongoDB and return a ready store.

        Args:
            connection_url: MongoDB connection URL
            database_name: Name of the database
            collection_name: Name of the books collection
            timeout_ms: Server selection timeout
        """
        client = AsyncIOMotorClient(connection_url, serverSelectionTimeoutMS=timeout_ms)
        database = client[database_name]
        try:
            await database.command("ping")
        except PyMongoError as e:
            logger.error("Failed to connect to MongoDB", error=str(e), database=database_name)
            client.close()
            raise StoreUnavailable() from e

        store = cls(database[collection_name])
        store.client = client
        store.database = database
        logger.info("Successfully connected to MongoDB",
                    database=database_name,
                    collection=collection_name)
        return store

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    async def ensure_schema(self) -> None:
        """
        Create the collection validator and indexes.
        Safe to run repeatedly.
        """
        validator = {"$jsonSchema": self._collection_json_schema()}
        name = self.collection.name
        try:
            try:
                await self.database.create_collection(name, validator=validator)
                logger.info("Created books collection with validator", collection=name)
            except CollectionInvalid:
                await self.database.command("collMod", name, validator=validator)
                logger.info("Updated books collection validator", collection=name)

            # Listing newest first per owner
            await self.collection.create_index([("ownerId", ASCENDING), ("createdAt", DESCENDING)])
            # Genre filter and genre breakdown
            await self.collection.create_index([("ownerId", ASCENDING), ("genre", ASCENDING)])

            logger.info("Successfully created MongoDB indexes")
        except PyMongoError as e:
            logger.error("Failed to set up books collection", error=str(e))
            raise StoreUnavailable() from e

    def _collection_json_schema(self) -> Dict[str, Any]:
        schema = collection_schema()
        schema["required"] = schema["required"] + ["ownerId", "createdAt", "updatedAt"]
        schema["properties"].update({
            "ownerId": {"bsonType": "string"},
            "createdAt": {"bsonType": "date"},
            "updatedAt": {"bsonType": "date"},
        })
        return schema

    async def list(self, owner_id: str) -> List[BookRecord]:
        """All records of an owner, newest first."""
        return await self._find({"ownerId": owner_id})

    async def search(
        self,
        owner_id: str,
        query: Optional[str] = None,
        genre: Optional[str] = None,
    ) -> List[BookRecord]:
        """
        Filter an owner's records.

        Args:
            owner_id: Owner whose records are searched
            query: Case-insensitive substring matched against title or author
            genre: Exact genre, ignored when empty or "All"

        Returns:
            Matching records, newest first
        """
        filter_query: Dict[str, Any] = {"ownerId": owner_id}

        if query:
            pattern = {"$regex": re.escape(query), "$options": "i"}
            filter_query["$or"] = [{"title": pattern}, {"author": pattern}]

        if genre and genre != ALL_GENRES:
            filter_query["genre"] = genre

        return await self._find(filter_query)

    async def _find(self, filter_query: Dict[str, Any]) -> List[BookRecord]:
        try:
            cursor = self.collection.find(filter_query).sort(NEWEST_FIRST)
            documents = await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error("Failed to query books", error=str(e), filter=str(filter_query))
            raise StoreUnavailable() from e

        return [BookRecord.from_document(document) for document in documents]

    @staticmethod
    def _id_filter(book_id: str, owner_id: Optional[str]) -> Dict[str, Any]:
        filter_query: Dict[str, Any] = {"_id": parse_object_id(book_id)}
        if owner_id is not None:
            filter_query["ownerId"] = owner_id
        return filter_query

    async def get(self, book_id: str, owner_id: Optional[str] = None) -> BookRecord:
        """
        Get a single record, restricted to owner_id when given.

        Raises:
            MalformedIdentifier: book_id is not an ObjectId
            BookNotFound: no record has this id
        """
        filter_query = self._id_filter(book_id, owner_id)
        try:
            document = await self.collection.find_one(filter_query)
        except PyMongoError as e:
            logger.error("Failed to get book by ID", book_id=book_id, error=str(e))
            raise StoreUnavailable() from e

        if document is None:
            raise BookNotFound()
        return BookRecord.from_document(document)

    async def create(self, payload: Dict[str, Any], owner_id: str) -> BookRecord:
        """
        Insert a new record.

        The payload is re-checked against BookPayload here so the store never
        persists a record the model rejects.

        Raises:
            ValidationFailed: with stage "store"
        """
        cleaned = validate_book(payload, stage="store")

        now = _now()
        document = {
            "title": cleaned["title"],
            "author": cleaned["author"],
            "year": cleaned.get("year", ""),
            "genre": cleaned["genre"],
            "imagePath": cleaned.get("imagePath", ""),
            "description": cleaned.get("description", ""),
            "ownerId": owner_id,
            "createdAt": now,
            "updatedAt": now,
        }

        try:
            inserted = await self.collection.insert_one(document)
        except OperationFailure as e:
            if e.code == DOCUMENT_VALIDATION_FAILURE:
                logger.warning("Book rejected by collection validator", owner_id=owner_id)
                raise ValidationFailed(store_validation_errors(e), stage="store") from e
            logger.error("Failed to insert book", owner_id=owner_id, error=str(e))
            raise StoreUnavailable() from e
        except PyMongoError as e:
            logger.error("Failed to insert book", owner_id=owner_id, error=str(e))
            raise StoreUnavailable() from e

        document["_id"] = inserted.inserted_id
        logger.info("Book created", book_id=str(inserted.inserted_id), owner_id=owner_id)
        return BookRecord.from_document(document)

    async def update(
        self,
        book_id: str,
        payload: Dict[str, Any],
        owner_id: Optional[str] = None,
    ) -> BookRecord:
        """
        Apply a partial update.

        Only keys present in the payload are written. Identifier, owner and
        timestamp keys are never taken from the payload. The merged record
        must satisfy BookPayload.

        Raises:
            MalformedIdentifier, BookNotFound, ValidationFailed
        """
        current = await self.get(book_id, owner_id)

        changes = validate_book(payload, partial=True, stage="store")
        merged = current.model_dump(mode="json", by_alias=True, include={
            "title", "author", "year", "genre", "image_path", "description",
        })
        merged.update(changes)
        cleaned = validate_book(merged, stage="store")

        update_fields = {key: cleaned[key] for key in changes}
        update_fields["updatedAt"] = _now()

        try:
            document = await self.collection.find_one_and_update(
                self._id_filter(current.id, owner_id),
                {"$set": update_fields},
                return_document=ReturnDocument.AFTER,
            )
        except OperationFailure as e:
            if e.code == DOCUMENT_VALIDATION_FAILURE:
                logger.warning("Book update rejected by collection validator", book_id=book_id)
                raise ValidationFailed(store_validation_errors(e), stage="store") from e
            logger.error("Failed to update book", book_id=book_id, error=str(e))
            raise StoreUnavailable() from e
        except PyMongoError as e:
            logger.error("Failed to update book", book_id=book_id, error=str(e))
            raise StoreUnavailable() from e

        # Deleted between the read and the write
        if document is None:
            logger.warning("Book not found for update", book_id=book_id)
            raise BookNotFound()

        logger.info("Book updated", book_id=book_id, fields=sorted(changes))
        return BookRecord.from_document(document)

    async def delete(self, book_id: str, owner_id: Optional[str] = None) -> BookRecord:
        """
        Remove a record and return it. Cover images are left untouched.

        Raises:
            MalformedIdentifier, BookNotFound
        """
        filter_query = self._id_filter(book_id, owner_id)
        try:
            document = await self.collection.find_one_and_delete(filter_query)
        except PyMongoError as e:
            logger.error("Failed to delete book", book_id=book_id, error=str(e))
            raise StoreUnavailable() from e

        if document is None:
            logger.warning("Book not found for deletion", book_id=book_id)
            raise BookNotFound()

        logger.info("Book deleted", book_id=book_id)
        return BookRecord.from_document(document)

    async def stats(self, owner_id: str) -> StatsSummary:
        """
        Count records by genre and by year for one owner.

        Returns:
            StatsSummary with genres by count descending and the ten most
            recent non-empty years
        """
        genre_pipeline = [
            {"$match": {"ownerId": owner_id}},
            {"$group": {"_id": "$genre", "count": {"$sum": 1}}},
            {"$sort": {"count": -1, "_id": 1}},
        ]
        year_pipeline = [
            {"$match": {"ownerId": owner_id, "year": {"$nin": ["", None]}}},
            {"$group": {"_id": "$year", "count": {"$sum": 1}}},
            {"$sort": {"_id": -1}},
            {"$limit": YEAR_STATS_LIMIT},
        ]

        try:
            total = await self.collection.count_documents({"ownerId": owner_id})
            genre_docs = await self.collection.aggregate(genre_pipeline).to_list(length=None)
            year_docs = await self.collection.aggregate(year_pipeline).to_list(length=None)
        except PyMongoError as e:
            logger.error("Failed to get book stats", owner_id=owner_id, error=str(e))
            raise StoreUnavailable() from e

        return StatsSummary(
            total_count=total,
            genre_stats=[GenreCount(genre=doc["_id"], count=doc["count"]) for doc in genre_docs],
            year_stats=[YearCount(year=str(doc["_id"]), count=doc["count"]) for doc in year_docs],
        )

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")
            books_count = await self.collection.estimated_document_count()
            return {
                "status": "healthy",
                "books_collection": "accessible",
                "books_count": books_count,
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e),
            }
