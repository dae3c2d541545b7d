import datetime
import uuid
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .approval_db import ApprovalDB
from .comment_db import CommentDB
from .enums import DocumentStatus, DocumentType


class DocumentDB(BaseModel):
    """The document aggregate: a document together with its full approval set.

    Approvals are embedded so that one MongoDB write covers the whole
    aggregate. `version` drives the optimistic compare-and-swap in the store.
    """
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4().hex))
    title: str
    number: Optional[str] = None  # Assigned once, when the document leaves DRAFT
    type: DocumentType
    status: DocumentStatus = DocumentStatus.DRAFT
    content: str

    created_by: str
    responsible: Optional[str] = None
    student_ref: Optional[str] = None
    deadline: Optional[datetime.datetime] = None
    file_refs: List[str] = Field(default_factory=list)
    template_id: Optional[str] = None

    approvals: List[ApprovalDB] = Field(default_factory=list)

    version: int = 1

    created_at: datetime.datetime = Field(default_factory=lambda: datetime.datetime.now(datetime.UTC))
    updated_at: datetime.datetime = Field(default_factory=lambda: datetime.datetime.now(datetime.UTC))
    completed_at: Optional[datetime.datetime] = None


class DocumentDetails(DocumentDB):
    # Read-side view returned by GET /documents/{id}
    comments: List[CommentDB] = Field(default_factory=list)
