"""
Document store connection management.

One DocumentStore is built at application startup and kept on
``app.state.store``; routes receive the database handle through the
``get_db`` dependency. Scripts construct their own store and close it.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
import logging
import re

from bson import ObjectId
from fastapi import Request
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import OperationFailure, PyMongoError

from core.config import settings
from core.exceptions import NotConnectedError, StorageError, ValidationError

logger = logging.getLogger(__name__)

USERS = "users"
WORKOUT_SESSIONS = "workout_sessions"
REP_IMAGES = "rep_images"
CONNECTIONS = "connections"

# IndexOptionsConflict, IndexKeySpecsConflict
INDEX_OPTIONS_CONFLICT = (85, 86)

# (collection, keys, options)
INDEXES: List[Tuple[str, List[Tuple[str, int]], Dict[str, Any]]] = [
    (WORKOUT_SESSIONS, [("athleteName", ASCENDING), ("timestamp", DESCENDING)], {}),
    (WORKOUT_SESSIONS, [("athleteId", ASCENDING), ("timestamp", DESCENDING)], {}),
    (WORKOUT_SESSIONS, [("ingestionStatus", ASCENDING), ("createdAt", ASCENDING)], {}),
    (REP_IMAGES, [("sessionId", ASCENDING)], {}),
    (REP_IMAGES, [("sessionId", ASCENDING), ("repNumber", ASCENDING)], {"unique": True}),
    (USERS, [("userId", ASCENDING)], {"unique": True}),
    # sparse: profile upserts create users without an email
    (USERS, [("email", ASCENDING)], {"unique": True, "sparse": True}),
    (USERS, [("role", ASCENDING)], {}),
    (CONNECTIONS, [("fromUserId", ASCENDING), ("toUserId", ASCENDING)], {}),
    (CONNECTIONS, [("toUserId", ASCENDING), ("status", ASCENDING)], {}),
]


class DocumentStore:
    """Owns the MongoClient and the single database handle used by the API."""

    def __init__(
        self,
        uri: Optional[str] = None,
        db_name: Optional[str] = None,
        client: Optional[MongoClient] = None,
    ):
        self.uri = uri or settings.MONGODB_URI
        self.db_name = db_name or settings.MONGODB_DB
        self._client = client
        self._db: Optional[Database] = None

    @property
    def connected(self) -> bool:
        return self._db is not None

    def connect(self) -> Database:
        """Open the client, select the database and ensure indexes."""
        if self._client is None:
            self._client = MongoClient(
                self.uri,
                serverSelectionTimeoutMS=settings.MONGODB_SERVER_SELECTION_TIMEOUT_MS,
            )
        self._client.admin.command("ping")
        self._db = self._client[self.db_name]
        logger.info(f"Connected to document store database '{self.db_name}'")
        self.ensure_indexes()
        return self._db

    def ensure_indexes(self) -> None:
        db = self.get_handle()
        for collection, keys, options in INDEXES:
            try:
                db[collection].create_index(keys, **options)
            except OperationFailure as e:
                if e.code in INDEX_OPTIONS_CONFLICT:
                    # e.g. a non-unique email_1 left by an older deployment
                    logger.warning(f"Index on {collection} exists with other options, drop it to apply {keys}: {e}")
                elif "already exists" not in str(e):
                    logger.warning(f"Index creation warning on {collection}: {e}")
        logger.info("Database indexes ensured")

    def get_handle(self) -> Database:
        if self._db is None:
            raise NotConnectedError("Database not connected yet")
        return self._db

    def ping(self) -> bool:
        try:
            self.get_handle().command("ping")
            return True
        except (NotConnectedError, PyMongoError) as e:
            logger.error(f"Document store ping failed: {e}")
            return False

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            logger.info("Document store connection closed")
        self._client = None
        self._db = None


def get_db(request: Request) -> Database:
    """
    Dependency for FastAPI to get the database handle.

    Fails with a 500 StorageError when the store never connected.
    """
    store: Optional[DocumentStore] = getattr(request.app.state, "store", None)
    try:
        if store is None:
            raise NotConnectedError("Database not connected yet")
        return store.get_handle()
    except NotConnectedError as e:
        raise StorageError("Database unavailable", details=str(e))


def utc_now() -> datetime:
    """Naive UTC, the form the store hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return utc_now()
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_object_id(value: str, label: str = "id") -> ObjectId:
    """Convert a path parameter to an ObjectId or fail with a 400."""
    if not ObjectId.is_valid(value):
        raise ValidationError(f"Invalid {label} format", field=label)
    return ObjectId(value)


def serialize_document(value: Any) -> Any:
    """Recursively replace ObjectIds with their string form."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize_document(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_document(v) for v in value]
    return value


def parse_int(value: Any) -> Optional[int]:
    """Leading integer of a string, like ``parseInt``; None when there is none."""
    match = re.match(r"\s*([+-]?\d+)", str(value))
    return int(match.group(1)) if match else None
