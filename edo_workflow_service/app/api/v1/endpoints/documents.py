# API Router for EDO Documents and their approval workflow
import datetime
import logging
import math
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, Field

from edo_workflow_service.app.api.v1.errors import to_http_exception
from edo_workflow_service.app.config import settings
from edo_workflow_service.app.dependencies.actor import get_actor_id
from edo_workflow_service.app.models import ApprovalDB, ApprovalStatus, CommentDB, DocumentDB, DocumentDetails, DocumentStatus, DocumentType
from edo_workflow_service.app.service.commands import handlers as command_handlers
from edo_workflow_service.app.service.commands import models as command_models
from edo_workflow_service.app.service.exceptions import BaseWorkflowError
from edo_workflow_service.app.service.interfaces.permission_client import AbstractPermissionClient
from edo_workflow_service.infrastructure.database import comment_store, document_store
from edo_workflow_service.infrastructure.database.connection import get_db
from edo_workflow_service.infrastructure.kafka.producer import KafkaEventPublisher, get_optional_event_publisher
from edo_workflow_service.infrastructure.permission_service_client import get_permission_client

logger = logging.getLogger(__name__)
router = APIRouter()


# --- Request / response models ---

class CreateDocumentRequest(BaseModel):
    title: Optional[str] = None
    type: DocumentType
    content: Optional[str] = None
    template_id: Optional[str] = None
    responsible: Optional[str] = None
    student_ref: Optional[str] = None
    deadline: Optional[datetime.datetime] = None
    file_refs: List[str] = Field(default_factory=list)
    approver_ids: Optional[List[str]] = None


class UpdateDocumentRequest(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    responsible: Optional[str] = None
    student_ref: Optional[str] = None
    deadline: Optional[datetime.datetime] = None
    approver_ids: Optional[List[str]] = None  # Sends the draft for approval


class ApprovalDecisionRequest(BaseModel):
    status: ApprovalStatus
    comment: Optional[str] = None


class RejectRequest(BaseModel):
    comment: str


class AddCommentRequest(BaseModel):
    content: str


class PaginationMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class DocumentListResponse(BaseModel):
    data: List[DocumentDB]
    meta: PaginationMeta


async def _require_permission(
    permission_client: AbstractPermissionClient,
    actor_id: str,
    action: str,
    document_id: Optional[str] = None,
) -> None:
    if not await permission_client.may_act(actor_id, action, document_id):
        logger.warning(f"Permission service denied {action} for actor {actor_id} (document: {document_id}).")
        raise HTTPException(status_code=403, detail=f"Actor '{actor_id}' is not allowed to {action.lower()}.")


# --- Queries ---

@router.get("", response_model=DocumentListResponse, summary="List documents with filters and pagination.")
async def list_documents_api(
    search: Optional[str] = None,
    status: Optional[DocumentStatus] = None,
    type: Optional[DocumentType] = None,
    created_by: Optional[str] = None,
    responsible: Optional[str] = None,
    student_ref: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    page_size = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
    try:
        items, total = await document_store.list_documents(
            db,
            page=page,
            limit=page_size,
            status=status.value if status else None,
            document_type=type.value if type else None,
            created_by=created_by,
            responsible=responsible,
            student_ref=student_ref,
            search=search,
        )
    except Exception as e:
        logger.error(f"Error listing documents: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list documents.")
    return DocumentListResponse(
        data=items,
        meta=PaginationMeta(total=total, page=page, limit=page_size, total_pages=math.ceil(total / page_size)),
    )


@router.get("/{document_id}", response_model=DocumentDetails, summary="Get a document with its approvals and comments.")
async def get_document_api(document_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    document = await document_store.get_document(db, document_id)
    if document is None:
        raise HTTPException(status_code=404, detail=f"Document with ID '{document_id}' not found.")
    comments = await comment_store.list_comments(db, document_id)
    return DocumentDetails(**document.model_dump(), comments=comments)


@router.get("/{document_id}/approvals", response_model=List[ApprovalDB], summary="List approvals in approver order.")
async def list_approvals_api(document_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    document = await document_store.get_document(db, document_id)
    if document is None:
        raise HTTPException(status_code=404, detail=f"Document with ID '{document_id}' not found.")
    return sorted(document.approvals, key=lambda approval: approval.order)


@router.get("/{document_id}/comments", response_model=List[CommentDB], summary="List comments oldest first.")
async def list_comments_api(document_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    if await document_store.get_document(db, document_id) is None:
        raise HTTPException(status_code=404, detail=f"Document with ID '{document_id}' not found.")
    return await comment_store.list_comments(db, document_id)


# --- Commands ---

@router.post("", status_code=201, response_model=DocumentDB, summary="Create a document in DRAFT.")
async def create_document_api(
    request_data: CreateDocumentRequest = Body(...),
    actor_id: str = Depends(get_actor_id),
    db: AsyncIOMotorDatabase = Depends(get_db),
    permission_client: AbstractPermissionClient = Depends(get_permission_client),
    event_publisher: Optional[KafkaEventPublisher] = Depends(get_optional_event_publisher),
):
    await _require_permission(permission_client, actor_id, "CREATE")
    if request_data.approver_ids is not None:
        await _require_permission(permission_client, actor_id, "SEND_FOR_APPROVAL")
    try:
        cmd = command_models.CreateDocumentCommand(actor_id=actor_id, **request_data.model_dump())
        return await command_handlers.handle_create_document(db, cmd, event_publisher)
    except BaseWorkflowError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Unexpected error creating document: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create document.")


@router.patch("/{document_id}", response_model=DocumentDB, summary="Edit a DRAFT, or send it for approval.")
async def update_document_api(
    document_id: str,
    request_data: UpdateDocumentRequest = Body(...),
    actor_id: str = Depends(get_actor_id),
    db: AsyncIOMotorDatabase = Depends(get_db),
    permission_client: AbstractPermissionClient = Depends(get_permission_client),
    event_publisher: Optional[KafkaEventPublisher] = Depends(get_optional_event_publisher),
):
    changes = request_data.model_dump(exclude_unset=True)
    approver_ids = changes.pop("approver_ids", None)

    if changes or approver_ids is None:
        await _require_permission(permission_client, actor_id, "EDIT", document_id)
    if approver_ids is not None:
        await _require_permission(permission_client, actor_id, "SEND_FOR_APPROVAL", document_id)

    try:
        # Edits sent along with approver_ids are committed by the send itself, or not at all
        if approver_ids is not None:
            send_cmd = command_models.SendForApprovalCommand(
                actor_id=actor_id, document_id=document_id, approver_ids=approver_ids, changes=changes
            )
            return await command_handlers.handle_send_for_approval(db, send_cmd, event_publisher)
        cmd = command_models.UpdateDocumentCommand(actor_id=actor_id, document_id=document_id, changes=changes)
        return await command_handlers.handle_update_document(db, cmd)
    except BaseWorkflowError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Unexpected error updating document {document_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update document.")


@router.delete("/{document_id}", status_code=204, summary="Delete a DRAFT (creator only).")
async def delete_document_api(
    document_id: str,
    actor_id: str = Depends(get_actor_id),
    db: AsyncIOMotorDatabase = Depends(get_db),
    permission_client: AbstractPermissionClient = Depends(get_permission_client),
):
    await _require_permission(permission_client, actor_id, "DELETE", document_id)
    try:
        cmd = command_models.DeleteDocumentCommand(actor_id=actor_id, document_id=document_id)
        await command_handlers.handle_delete_document(db, cmd)
    except BaseWorkflowError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Unexpected error deleting document {document_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete document.")
    return Response(status_code=204)


async def _decide(
    db: AsyncIOMotorDatabase,
    document_id: str,
    actor_id: str,
    decision: ApprovalStatus,
    comment: Optional[str],
    event_publisher: Optional[KafkaEventPublisher],
) -> DocumentDB:
    try:
        cmd = command_models.ApprovalDecisionCommand(
            actor_id=actor_id, document_id=document_id, decision=decision, comment=comment
        )
        return await command_handlers.handle_approval_decision(db, cmd, event_publisher)
    except BaseWorkflowError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Unexpected error recording decision on document {document_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to record approval decision.")


@router.post("/{document_id}/approve", response_model=DocumentDB, summary="Record the caller's APPROVED or REJECTED decision.")
async def approve_document_api(
    document_id: str,
    request_data: ApprovalDecisionRequest = Body(...),
    actor_id: str = Depends(get_actor_id),
    db: AsyncIOMotorDatabase = Depends(get_db),
    permission_client: AbstractPermissionClient = Depends(get_permission_client),
    event_publisher: Optional[KafkaEventPublisher] = Depends(get_optional_event_publisher),
):
    action = "REJECT" if request_data.status == ApprovalStatus.REJECTED else "APPROVE"
    await _require_permission(permission_client, actor_id, action, document_id)
    return await _decide(db, document_id, actor_id, request_data.status, request_data.comment, event_publisher)


@router.post("/{document_id}/reject", response_model=DocumentDB, summary="Reject the document with a mandatory comment.")
async def reject_document_api(
    document_id: str,
    request_data: RejectRequest = Body(...),
    actor_id: str = Depends(get_actor_id),
    db: AsyncIOMotorDatabase = Depends(get_db),
    permission_client: AbstractPermissionClient = Depends(get_permission_client),
    event_publisher: Optional[KafkaEventPublisher] = Depends(get_optional_event_publisher),
):
    await _require_permission(permission_client, actor_id, "REJECT", document_id)
    return await _decide(db, document_id, actor_id, ApprovalStatus.REJECTED, request_data.comment, event_publisher)


@router.post("/{document_id}/complete", response_model=DocumentDB, summary="Mark an APPROVED document COMPLETED.")
async def complete_document_api(
    document_id: str,
    actor_id: str = Depends(get_actor_id),
    db: AsyncIOMotorDatabase = Depends(get_db),
    permission_client: AbstractPermissionClient = Depends(get_permission_client),
    event_publisher: Optional[KafkaEventPublisher] = Depends(get_optional_event_publisher),
):
    await _require_permission(permission_client, actor_id, "COMPLETE", document_id)
    try:
        cmd = command_models.MarkCompletedCommand(actor_id=actor_id, document_id=document_id)
        return await command_handlers.handle_mark_completed(db, cmd, event_publisher)
    except BaseWorkflowError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Unexpected error completing document {document_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to complete document.")


@router.post("/{document_id}/comments", status_code=201, response_model=CommentDB, summary="Append a comment.")
async def add_comment_api(
    document_id: str,
    request_data: AddCommentRequest = Body(...),
    actor_id: str = Depends(get_actor_id),
    db: AsyncIOMotorDatabase = Depends(get_db),
    permission_client: AbstractPermissionClient = Depends(get_permission_client),
    event_publisher: Optional[KafkaEventPublisher] = Depends(get_optional_event_publisher),
):
    await _require_permission(permission_client, actor_id, "COMMENT", document_id)
    try:
        cmd = command_models.AddCommentCommand(actor_id=actor_id, document_id=document_id, content=request_data.content)
        return await command_handlers.handle_add_comment(db, cmd, event_publisher)
    except BaseWorkflowError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Unexpected error adding comment to document {document_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to add comment.")
