# Pydantic models for Domain Events
from pydantic import BaseModel, Field
from typing import List, Optional, ClassVar
import datetime
import uuid

from edo_workflow_service.app.models.enums import ApprovalStatus, DocumentStatus, DocumentType


class EventMetaData(BaseModel):
    correlation_id: Optional[str] = None
    causation_id: Optional[str] = None
    actor_id: Optional[str] = None


class BaseEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str
    aggregate_id: str
    timestamp: datetime.datetime = Field(default_factory=lambda: datetime.datetime.now(datetime.UTC))
    version: int = 1  # Aggregate version produced by the commit that emitted this event
    payload: BaseModel
    metadata: EventMetaData = Field(default_factory=EventMetaData)


# --- Document lifecycle ---

class DocumentCreatedEventPayload(BaseModel):
    title: str
    type: DocumentType
    created_by: str
    template_id: Optional[str] = None
    file_refs: List[str] = Field(default_factory=list)


class DocumentCreatedEvent(BaseEvent):
    event_type: str = "DocumentCreated"
    payload: DocumentCreatedEventPayload
    payload_model_name: ClassVar[str] = "DocumentCreatedEventPayload"


class DocumentSentForApprovalEventPayload(BaseModel):
    number: Optional[str] = None
    approver_ids: List[str]
    sent_by: str


class DocumentSentForApprovalEvent(BaseEvent):
    event_type: str = "DocumentSentForApproval"
    payload: DocumentSentForApprovalEventPayload
    payload_model_name: ClassVar[str] = "DocumentSentForApprovalEventPayload"


# --- Approval decisions ---

class ApprovalRecordedEventPayload(BaseModel):
    approval_id: str
    approver_id: str
    decision: ApprovalStatus
    comment: Optional[str] = None
    document_status: DocumentStatus


class ApprovalRecordedEvent(BaseEvent):
    event_type: str = "ApprovalRecorded"
    payload: ApprovalRecordedEventPayload
    payload_model_name: ClassVar[str] = "ApprovalRecordedEventPayload"


class DocumentApprovedEventPayload(BaseModel):
    number: Optional[str] = None
    approver_ids: List[str]


class DocumentApprovedEvent(BaseEvent):
    event_type: str = "DocumentApproved"
    payload: DocumentApprovedEventPayload
    payload_model_name: ClassVar[str] = "DocumentApprovedEventPayload"


class DocumentRejectedEventPayload(BaseModel):
    number: Optional[str] = None
    rejected_by: str
    comment: str


class DocumentRejectedEvent(BaseEvent):
    event_type: str = "DocumentRejected"
    payload: DocumentRejectedEventPayload
    payload_model_name: ClassVar[str] = "DocumentRejectedEventPayload"


class DocumentCompletedEventPayload(BaseModel):
    number: Optional[str] = None
    completed_by: str


class DocumentCompletedEvent(BaseEvent):
    event_type: str = "DocumentCompleted"
    payload: DocumentCompletedEventPayload
    payload_model_name: ClassVar[str] = "DocumentCompletedEventPayload"


# --- Comment thread ---

class CommentAddedEventPayload(BaseModel):
    comment_id: str
    author_id: str


class CommentAddedEvent(BaseEvent):
    event_type: str = "CommentAdded"
    payload: CommentAddedEventPayload
    payload_model_name: ClassVar[str] = "CommentAddedEventPayload"
