"""
MongoDB access helpers.

Wraps pymongo so that driver faults surface as School errors and every
call honours the configured timeout.
"""

from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import structlog
from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import InternalStorageError, StorageTimeout
from settings import Settings

logger = structlog.get_logger(__name__)

Sort = Sequence[Tuple[str, int]]


def connect(settings: Settings) -> Database:
    client = MongoClient(
        settings.mongodb_uri,
        serverSelectionTimeoutMS=settings.storage_timeout_ms,
        timeoutMS=settings.storage_timeout_ms,
    )
    logger.info("database_client_created", database=settings.database_name)
    return client[settings.database_name]


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as e:
        if e.timeout:
            logger.error("storage_timeout", operation=operation, error=str(e))
            raise StorageTimeout() from e
        logger.error("storage_error", operation=operation, error=str(e))
        raise InternalStorageError() from e


def ensure_indexes(db: Database) -> None:
    with storage_errors("ensure_indexes"):
        db["student"].create_index([("lastName", ASCENDING), ("firstName", ASCENDING)])
        db["teacher"].create_index([("lastName", ASCENDING), ("firstName", ASCENDING)])
        db["course"].create_index([("code", ASCENDING)])
        db["course"].create_index([("teacherId", ASCENDING)])
        db["course"].create_index([("tests.id", ASCENDING)])
        db["course"].create_index([("tests.studentId", ASCENDING)])
        db["test"].create_index([("studentId", ASCENDING)])
        db["test"].create_index([("courseId", ASCENDING)])


def create_document(
    collection: Collection,
    data: Dict[str, Any],
    id_factory: Optional[Callable[[], Any]] = None,
    retries: int = 0,
) -> Dict[str, Any]:
    """Insert a document and return it with its _id.

    With an id_factory the _id is chosen before the insert. A duplicate key
    means another writer took the same id, so a fresh one is allocated up to
    `retries` more times.
    """
    attempt = 0
    while True:
        document = dict(data)
        with storage_errors(f"{collection.name}.insert"):
            if id_factory is not None:
                document["_id"] = id_factory()
            try:
                res = collection.insert_one(document)
            except DuplicateKeyError:
                if id_factory is None or attempt >= retries:
                    raise
                attempt += 1
                logger.warning("id_collision_retry", collection=collection.name, id=document["_id"], attempt=attempt)
                continue
        document["_id"] = res.inserted_id
        return document


def get_document(collection: Collection, filter_dict: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    with storage_errors(f"{collection.name}.find_one"):
        return collection.find_one(filter_dict)


def get_documents(collection: Collection, filter_dict: Dict[str, Any] = None, sort: Sort = None) -> List[Dict[str, Any]]:
    with storage_errors(f"{collection.name}.find"):
        cursor = collection.find(filter_dict or {})
        if sort:
            cursor = cursor.sort(list(sort))
        return list(cursor)


def exists(collection: Collection, filter_dict: Dict[str, Any]) -> bool:
    with storage_errors(f"{collection.name}.exists"):
        return collection.find_one(filter_dict, {"_id": 1}) is not None
