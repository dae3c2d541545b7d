# Persistence for the Document aggregate (document + embedded approvals)
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from edo_workflow_service.app.models.document_db import DocumentDB
from edo_workflow_service.app.service.exceptions import ConcurrencyConflictError, DocumentNotFoundError

logger = logging.getLogger(__name__)
DOCUMENTS_COLLECTION = "documents"
COUNTERS_COLLECTION = "document_counters"


async def insert_document(db: AsyncIOMotorDatabase, document: DocumentDB) -> DocumentDB:
    """Stores a newly created aggregate."""
    await db[DOCUMENTS_COLLECTION].insert_one(document.model_dump())
    logger.info(f"Inserted document ID: {document.id} (type: {document.type}, status: {document.status})")
    return document


async def get_document(db: AsyncIOMotorDatabase, document_id: str) -> Optional[DocumentDB]:
    doc = await db[DOCUMENTS_COLLECTION].find_one({"id": document_id})
    return DocumentDB(**doc) if doc else None


async def load_for_update(db: AsyncIOMotorDatabase, document_id: str) -> DocumentDB:
    """Loads the aggregate for a load-mutate-save cycle.

    The returned model carries the version it was read at; `save_document`
    only succeeds if nobody has saved a newer version in between.
    """
    document = await get_document(db, document_id)
    if document is None:
        raise DocumentNotFoundError(document_id=document_id)
    return document


async def _raise_missing_or_conflict(db: AsyncIOMotorDatabase, document_id: str, expected_version: int):
    current = await db[DOCUMENTS_COLLECTION].find_one({"id": document_id}, {"version": 1})
    if current is None:
        logger.warning(f"Document ID: {document_id} disappeared before save.")
        raise DocumentNotFoundError(document_id=document_id)
    actual_version = current.get("version", 0)
    logger.warning(
        f"Version conflict saving document ID: {document_id}. "
        f"Expected version {expected_version}, found {actual_version}."
    )
    raise ConcurrencyConflictError(
        aggregate_id=document_id,
        expected_version=expected_version,
        actual_version=actual_version,
    )


async def save_document(db: AsyncIOMotorDatabase, document: DocumentDB) -> DocumentDB:
    """Atomically replaces the aggregate if its stored version still matches.

    Returns the saved aggregate with its version incremented.
    """
    expected_version = document.version
    saved = document.model_copy(update={"version": expected_version + 1})

    result = await db[DOCUMENTS_COLLECTION].replace_one(
        {"id": document.id, "version": expected_version},
        saved.model_dump(),
    )
    if result.matched_count == 0:
        await _raise_missing_or_conflict(db, document.id, expected_version)

    logger.info(f"Saved document ID: {document.id} at version {saved.version} (status: {saved.status}).")
    return saved


async def delete_document(db: AsyncIOMotorDatabase, document_id: str, expected_version: int) -> None:
    result = await db[DOCUMENTS_COLLECTION].delete_one({"id": document_id, "version": expected_version})
    if result.deleted_count == 0:
        await _raise_missing_or_conflict(db, document_id, expected_version)
    logger.info(f"Deleted document ID: {document_id} (version {expected_version}).")


def build_list_filter(
    status: Optional[str] = None,
    document_type: Optional[str] = None,
    created_by: Optional[str] = None,
    responsible: Optional[str] = None,
    student_ref: Optional[str] = None,
    search: Optional[str] = None,
) -> Dict[str, Any]:
    query_filter: Dict[str, Any] = {}
    if status:
        query_filter["status"] = status
    if document_type:
        query_filter["type"] = document_type
    if created_by:
        query_filter["created_by"] = created_by
    if responsible:
        query_filter["responsible"] = responsible
    if student_ref:
        query_filter["student_ref"] = student_ref
    if search and search.strip():
        pattern = re.escape(search.strip())
        query_filter["$or"] = [
            {"title": {"$regex": pattern, "$options": "i"}},
            {"number": {"$regex": pattern, "$options": "i"}},
        ]
    return query_filter


async def list_documents(
    db: AsyncIOMotorDatabase,
    page: int = 1,
    limit: int = 20,
    **filters: Optional[str],
) -> Tuple[List[DocumentDB], int]:
    """Returns one page of documents, newest first, and the total match count."""
    query_filter = build_list_filter(**filters)
    skip = (page - 1) * limit

    total = await db[DOCUMENTS_COLLECTION].count_documents(query_filter)
    cursor = db[DOCUMENTS_COLLECTION].find(query_filter).sort("created_at", -1).skip(skip).limit(limit)
    docs = await cursor.to_list(length=limit)
    return [DocumentDB(**doc) for doc in docs], total


async def next_sequence_value(db: AsyncIOMotorDatabase, key: str) -> int:
    """Atomically increments and returns the named counter, creating it at 1."""
    counter = await db[COUNTERS_COLLECTION].find_one_and_update(
        {"key": key},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return counter["seq"]
