# Pydantic models for Commands
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
import datetime
import uuid

from edo_workflow_service.app.models.enums import ApprovalStatus, DocumentType


class BaseCommand(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    command_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    actor_id: str  # Who issues the command; never taken from ambient state
    correlation_id: Optional[str] = None


# --- Document lifecycle ---

class CreateDocumentCommand(BaseCommand):
    title: Optional[str] = None  # May come from the template
    type: DocumentType
    content: Optional[str] = None  # Falls back to the chosen or default template
    template_id: Optional[str] = None
    responsible: Optional[str] = None
    student_ref: Optional[str] = None
    deadline: Optional[datetime.datetime] = None
    file_refs: List[str] = Field(default_factory=list)
    approver_ids: Optional[List[str]] = None  # When given, the draft is sent for approval right away


class UpdateDocumentCommand(BaseCommand):
    document_id: str
    changes: Dict[str, Any]  # Subset of EDITABLE_DRAFT_FIELDS


class SendForApprovalCommand(BaseCommand):
    document_id: str
    approver_ids: List[str]
    changes: Dict[str, Any] = Field(default_factory=dict)  # Draft edits committed together with the send


class ApprovalDecisionCommand(BaseCommand):
    document_id: str
    decision: ApprovalStatus
    comment: Optional[str] = None


class MarkCompletedCommand(BaseCommand):
    document_id: str


class DeleteDocumentCommand(BaseCommand):
    document_id: str


class AddCommentCommand(BaseCommand):
    document_id: str
    content: str


# --- Template registry ---

class CreateTemplateCommand(BaseCommand):
    name: str
    type: DocumentType
    content: str
    variables: Optional[Dict[str, Any]] = None
    is_default: bool = False
    is_active: bool = True


class UpdateTemplateCommand(BaseCommand):
    template_id: str
    changes: Dict[str, Any]
