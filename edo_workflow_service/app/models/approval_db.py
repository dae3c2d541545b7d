import datetime
import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import ApprovalStatus


class ApprovalDB(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4().hex))
    document_id: str  # Owning document; approvals live embedded in the document record
    approver_id: str
    order: int  # 1-based position in the approver list given at send-time
    status: ApprovalStatus = ApprovalStatus.PENDING
    comment: Optional[str] = None

    created_at: datetime.datetime = Field(default_factory=lambda: datetime.datetime.now(datetime.UTC))
    resolved_at: Optional[datetime.datetime] = None  # Set only on transition out of PENDING
