# Operations for the document template registry collection
import datetime
import logging
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from edo_workflow_service.app.models.template_db import TemplateDB

logger = logging.getLogger(__name__)
TEMPLATES_COLLECTION = "document_templates"


async def add_template(db: AsyncIOMotorDatabase, template: TemplateDB) -> TemplateDB:
    await db[TEMPLATES_COLLECTION].insert_one(template.model_dump())
    logger.info(f"Added template ID: {template.id} '{template.name}' (type: {template.type}, default: {template.is_default})")
    return template


async def get_template_by_id(db: AsyncIOMotorDatabase, template_id: str) -> Optional[TemplateDB]:
    doc = await db[TEMPLATES_COLLECTION].find_one({"id": template_id})
    return TemplateDB(**doc) if doc else None


async def find_template_by_name_and_type(db: AsyncIOMotorDatabase, name: str, template_type: str) -> Optional[TemplateDB]:
    doc = await db[TEMPLATES_COLLECTION].find_one({"name": name, "type": template_type})
    return TemplateDB(**doc) if doc else None


async def list_templates(
    db: AsyncIOMotorDatabase,
    template_type: Optional[str] = None,
    is_default: Optional[bool] = None,
    only_active: bool = True,
) -> List[TemplateDB]:
    query_filter: Dict[str, Any] = {}
    if only_active:
        query_filter["is_active"] = True
    if template_type:
        query_filter["type"] = template_type
    if is_default is not None:
        query_filter["is_default"] = is_default

    cursor = db[TEMPLATES_COLLECTION].find(query_filter).sort("created_at", -1)
    docs = await cursor.to_list(length=None)
    return [TemplateDB(**doc) for doc in docs]


async def update_template(db: AsyncIOMotorDatabase, template_id: str, changes: Dict[str, Any]) -> Optional[TemplateDB]:
    set_operations = dict(changes)
    set_operations["updated_at"] = datetime.datetime.now(datetime.UTC)

    updated = await db[TEMPLATES_COLLECTION].find_one_and_update(
        {"id": template_id},
        {"$set": set_operations},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        logger.warning(f"Template ID: {template_id} not found for update.")
        return None
    logger.info(f"Updated template ID: {template_id} fields: {sorted(changes)}")
    return TemplateDB(**updated)


async def clear_default_flag(db: AsyncIOMotorDatabase, template_type: str, keep_template_id: Optional[str] = None) -> int:
    """Unmarks every default template of a type except `keep_template_id`."""
    query_filter: Dict[str, Any] = {"type": template_type, "is_default": True}
    if keep_template_id:
        query_filter["id"] = {"$ne": keep_template_id}
    result = await db[TEMPLATES_COLLECTION].update_many(
        query_filter,
        {"$set": {"is_default": False, "updated_at": datetime.datetime.now(datetime.UTC)}},
    )
    return result.modified_count


async def delete_template(db: AsyncIOMotorDatabase, template_id: str) -> bool:
    result = await db[TEMPLATES_COLLECTION].delete_one({"id": template_id})
    if result.deleted_count:
        logger.info(f"Deleted template ID: {template_id}")
    return result.deleted_count > 0
