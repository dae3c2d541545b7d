# Append-only comment thread per document
import logging
from typing import List

from motor.motor_asyncio import AsyncIOMotorDatabase

from edo_workflow_service.app.models.comment_db import CommentDB

logger = logging.getLogger(__name__)
COMMENTS_COLLECTION = "document_comments"


async def add_comment(db: AsyncIOMotorDatabase, comment: CommentDB) -> CommentDB:
    await db[COMMENTS_COLLECTION].insert_one(comment.model_dump())
    logger.info(f"Added comment ID: {comment.id} to document {comment.document_id} by {comment.author_id}")
    return comment


async def list_comments(db: AsyncIOMotorDatabase, document_id: str) -> List[CommentDB]:
    """Comments for a document in creation order."""
    # _id breaks ties between comments stored within the same millisecond
    cursor = db[COMMENTS_COLLECTION].find({"document_id": document_id}).sort([("created_at", 1), ("_id", 1)])
    docs = await cursor.to_list(length=None)
    return [CommentDB(**doc) for doc in docs]


async def delete_comments_for_document(db: AsyncIOMotorDatabase, document_id: str) -> int:
    result = await db[COMMENTS_COLLECTION].delete_many({"document_id": document_id})
    if result.deleted_count:
        logger.info(f"Removed {result.deleted_count} comments of deleted document {document_id}.")
    return result.deleted_count
