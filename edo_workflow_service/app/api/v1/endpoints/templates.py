# API Router for the document Template Registry
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Response
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel

from edo_workflow_service.app.api.v1.errors import to_http_exception
from edo_workflow_service.app.dependencies.actor import get_actor_id
from edo_workflow_service.app.models import DocumentType, TemplateDB
from edo_workflow_service.app.service import templates as template_service
from edo_workflow_service.app.service.commands import models as command_models
from edo_workflow_service.app.service.exceptions import BaseWorkflowError
from edo_workflow_service.app.service.interfaces.permission_client import AbstractPermissionClient
from edo_workflow_service.infrastructure.database.connection import get_db
from edo_workflow_service.infrastructure.permission_service_client import get_permission_client

logger = logging.getLogger(__name__)
router = APIRouter()


class CreateTemplateRequest(BaseModel):
    name: str
    type: DocumentType
    content: str
    variables: Optional[Dict[str, Any]] = None
    is_default: bool = False
    is_active: bool = True


class UpdateTemplateRequest(BaseModel):
    name: Optional[str] = None
    type: Optional[DocumentType] = None
    content: Optional[str] = None
    variables: Optional[Dict[str, Any]] = None
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None


async def _require_permission(permission_client: AbstractPermissionClient, actor_id: str, action: str) -> None:
    if not await permission_client.may_act(actor_id, action):
        logger.warning(f"Permission service denied {action} for actor {actor_id}.")
        raise HTTPException(status_code=403, detail=f"Actor '{actor_id}' is not allowed to {action.lower()}.")


@router.get("", response_model=List[TemplateDB], summary="List active templates, newest first.")
async def list_templates_api(type: Optional[DocumentType] = None, db: AsyncIOMotorDatabase = Depends(get_db)):
    return await template_service.list_templates(db, template_type=type.value if type else None)


@router.get("/defaults", response_model=List[TemplateDB], summary="List default templates.")
async def list_default_templates_api(type: Optional[DocumentType] = None, db: AsyncIOMotorDatabase = Depends(get_db)):
    return await template_service.list_default_templates(db, template_type=type.value if type else None)


@router.post("/init-defaults", response_model=List[TemplateDB], summary="Seed the built-in template catalogue.")
async def init_default_templates_api(
    actor_id: str = Depends(get_actor_id),
    db: AsyncIOMotorDatabase = Depends(get_db),
    permission_client: AbstractPermissionClient = Depends(get_permission_client),
):
    await _require_permission(permission_client, actor_id, "MANAGE_TEMPLATES")
    return await template_service.init_default_templates(db, actor_id)


@router.post("", status_code=201, response_model=TemplateDB, summary="Create a template.")
async def create_template_api(
    request_data: CreateTemplateRequest = Body(...),
    actor_id: str = Depends(get_actor_id),
    db: AsyncIOMotorDatabase = Depends(get_db),
    permission_client: AbstractPermissionClient = Depends(get_permission_client),
):
    await _require_permission(permission_client, actor_id, "MANAGE_TEMPLATES")
    try:
        cmd = command_models.CreateTemplateCommand(actor_id=actor_id, **request_data.model_dump())
        return await template_service.create_template(db, cmd)
    except BaseWorkflowError as e:
        raise to_http_exception(e)


@router.get("/{template_id}", response_model=TemplateDB, summary="Get a template.")
async def get_template_api(template_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    try:
        return await template_service.get_template(db, template_id)
    except BaseWorkflowError as e:
        raise to_http_exception(e)


@router.patch("/{template_id}", response_model=TemplateDB, summary="Update a template.")
async def update_template_api(
    template_id: str,
    request_data: UpdateTemplateRequest = Body(...),
    actor_id: str = Depends(get_actor_id),
    db: AsyncIOMotorDatabase = Depends(get_db),
    permission_client: AbstractPermissionClient = Depends(get_permission_client),
):
    await _require_permission(permission_client, actor_id, "MANAGE_TEMPLATES")
    try:
        cmd = command_models.UpdateTemplateCommand(
            actor_id=actor_id,
            template_id=template_id,
            changes=request_data.model_dump(exclude_unset=True, mode="json"),
        )
        return await template_service.update_template(db, cmd)
    except BaseWorkflowError as e:
        raise to_http_exception(e)


@router.delete("/{template_id}", status_code=204, summary="Delete a template.")
async def delete_template_api(
    template_id: str,
    actor_id: str = Depends(get_actor_id),
    db: AsyncIOMotorDatabase = Depends(get_db),
    permission_client: AbstractPermissionClient = Depends(get_permission_client),
):
    await _require_permission(permission_client, actor_id, "MANAGE_TEMPLATES")
    try:
        await template_service.delete_template(db, template_id)
    except BaseWorkflowError as e:
        raise to_http_exception(e)
    return Response(status_code=204)
