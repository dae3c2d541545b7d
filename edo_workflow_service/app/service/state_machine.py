"""
Approval state machine for EDO documents.

Pure logic: nothing here touches the database, Kafka or the clock. Callers
load the document aggregate, apply one of the transition functions below to
the in-memory aggregate and persist the result themselves.

    DRAFT --send--> IN_PROGRESS --approve (all approved)--> APPROVED --complete--> COMPLETED
                        |   ^
                        |   +--approve (some still pending)
                        +--reject--> REJECTED

REJECTED and COMPLETED are terminal. APPROVED only accepts the external
"mark completed" transition.
"""
import datetime
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from edo_workflow_service.app.models.approval_db import ApprovalDB
from edo_workflow_service.app.models.document_db import DocumentDB
from edo_workflow_service.app.models.enums import ApprovalStatus, DocumentStatus
from edo_workflow_service.app.service.exceptions import (
    InvalidStateError,
    NotAnApproverError,
    WorkflowValidationError,
)


class WorkflowAction(str, Enum):
    EDIT_DRAFT = "EDIT_DRAFT"
    DELETE = "DELETE"
    SEND_FOR_APPROVAL = "SEND_FOR_APPROVAL"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    COMPLETE = "COMPLETE"


# (current status, action) -> statuses the document may end up in.
# Pairs missing from the table are rejected with InvalidStateError.
# An empty target set means the aggregate is removed.
TRANSITIONS: Dict[Tuple[DocumentStatus, WorkflowAction], FrozenSet[DocumentStatus]] = {
    (DocumentStatus.DRAFT, WorkflowAction.EDIT_DRAFT): frozenset({DocumentStatus.DRAFT}),
    (DocumentStatus.DRAFT, WorkflowAction.DELETE): frozenset(),
    (DocumentStatus.DRAFT, WorkflowAction.SEND_FOR_APPROVAL): frozenset({DocumentStatus.IN_PROGRESS}),
    (DocumentStatus.IN_PROGRESS, WorkflowAction.APPROVE): frozenset({DocumentStatus.IN_PROGRESS, DocumentStatus.APPROVED}),
    (DocumentStatus.IN_PROGRESS, WorkflowAction.REJECT): frozenset({DocumentStatus.REJECTED}),
    (DocumentStatus.APPROVED, WorkflowAction.COMPLETE): frozenset({DocumentStatus.COMPLETED}),
}

TERMINAL_STATUSES: FrozenSet[DocumentStatus] = frozenset({DocumentStatus.REJECTED, DocumentStatus.COMPLETED})


@dataclass
class TransitionOutcome:
    action: WorkflowAction
    previous_status: DocumentStatus
    new_status: DocumentStatus
    approval: Optional[ApprovalDB] = None

    @property
    def status_changed(self) -> bool:
        return self.previous_status != self.new_status


def allowed_actions(status: DocumentStatus) -> List[WorkflowAction]:
    status = DocumentStatus(status)
    return [action for (from_status, action) in TRANSITIONS if from_status == status]


def ensure_action_allowed(document: DocumentDB, action: WorkflowAction) -> FrozenSet[DocumentStatus]:
    current = DocumentStatus(document.status)
    targets = TRANSITIONS.get((current, action))
    if targets is None:
        raise InvalidStateError(
            document_id=document.id,
            current_state=current.value,
            attempted_action=action.value.lower().replace("_", " "),
            allowed_actions=[a.value for a in allowed_actions(current)],
        )
    return targets


def compute_document_status(approvals: Iterable[ApprovalDB]) -> DocumentStatus:
    """Aggregate status of an in-flight document from its approval set.

    One rejection decides the document. Otherwise it is approved only when
    every approval is approved; partial approval stays IN_PROGRESS.
    """
    statuses = [ApprovalStatus(a.status) for a in approvals]
    if ApprovalStatus.REJECTED in statuses:
        return DocumentStatus.REJECTED
    if statuses and all(s == ApprovalStatus.APPROVED for s in statuses):
        return DocumentStatus.APPROVED
    return DocumentStatus.IN_PROGRESS


def validate_approver_ids(approver_ids: Optional[Iterable[str]], creator_id: str) -> List[str]:
    cleaned = [str(a).strip() for a in (approver_ids or [])]
    if not cleaned:
        raise WorkflowValidationError("At least one approver is required.", field="approver_ids")
    if any(not a for a in cleaned):
        raise WorkflowValidationError("Approver ids must not be blank.", field="approver_ids")
    if len(set(cleaned)) != len(cleaned):
        raise WorkflowValidationError("Approver ids must be distinct.", field="approver_ids")
    if creator_id in cleaned:
        raise WorkflowValidationError("The document creator cannot be one of its approvers.", field="approver_ids")
    return cleaned


def _touch(document: DocumentDB, now: datetime.datetime) -> None:
    document.updated_at = now


def send_for_approval(
    document: DocumentDB,
    approver_ids: Iterable[str],
    number: Optional[str],
    now: datetime.datetime,
) -> TransitionOutcome:
    ensure_action_allowed(document, WorkflowAction.SEND_FOR_APPROVAL)
    approvers = validate_approver_ids(approver_ids, document.created_by)

    previous = DocumentStatus(document.status)
    document.approvals = [
        ApprovalDB(document_id=document.id, approver_id=approver_id, order=index, created_at=now)
        for index, approver_id in enumerate(approvers, start=1)
    ]
    if document.number is None:
        document.number = number
    document.status = DocumentStatus.IN_PROGRESS.value
    _touch(document, now)
    return TransitionOutcome(WorkflowAction.SEND_FOR_APPROVAL, previous, DocumentStatus.IN_PROGRESS)


def record_decision(
    document: DocumentDB,
    approver_id: str,
    decision: ApprovalStatus,
    comment: Optional[str],
    now: datetime.datetime,
) -> TransitionOutcome:
    """Applies one approver's APPROVED/REJECTED decision to the aggregate."""
    decision = ApprovalStatus(decision)
    if decision == ApprovalStatus.PENDING:
        raise WorkflowValidationError("A decision must be APPROVED or REJECTED.", field="status")
    comment = comment.strip() if comment else None
    if decision == ApprovalStatus.REJECTED and not comment:
        raise WorkflowValidationError("A comment is required when rejecting a document.", field="comment")

    action = WorkflowAction.APPROVE if decision == ApprovalStatus.APPROVED else WorkflowAction.REJECT
    ensure_action_allowed(document, action)

    approval = next(
        (a for a in document.approvals
         if a.approver_id == approver_id and ApprovalStatus(a.status) == ApprovalStatus.PENDING),
        None,
    )
    if approval is None:
        raise NotAnApproverError(document_id=document.id, approver_id=approver_id)

    approval.status = decision.value
    approval.comment = comment
    approval.resolved_at = now

    previous = DocumentStatus(document.status)
    new_status = compute_document_status(document.approvals)
    document.status = new_status.value
    if new_status == DocumentStatus.APPROVED:
        document.completed_at = now
    _touch(document, now)
    return TransitionOutcome(action, previous, new_status, approval=approval)


def mark_completed(document: DocumentDB, now: datetime.datetime) -> TransitionOutcome:
    ensure_action_allowed(document, WorkflowAction.COMPLETE)
    previous = DocumentStatus(document.status)
    document.status = DocumentStatus.COMPLETED.value
    document.completed_at = now
    _touch(document, now)
    return TransitionOutcome(WorkflowAction.COMPLETE, previous, DocumentStatus.COMPLETED)


EDITABLE_DRAFT_FIELDS: FrozenSet[str] = frozenset({
    "title", "content", "responsible", "student_ref", "deadline",
})


def edit_draft(document: DocumentDB, changes: Dict[str, Any], now: datetime.datetime) -> TransitionOutcome:
    """Applies field edits to a DRAFT. Fields outside EDITABLE_DRAFT_FIELDS are refused."""
    ensure_action_allowed(document, WorkflowAction.EDIT_DRAFT)

    unknown = sorted(set(changes) - EDITABLE_DRAFT_FIELDS)
    if unknown:
        raise WorkflowValidationError(f"Fields cannot be edited: {', '.join(unknown)}.", field=unknown[0])
    for required_field in ("title", "content"):
        if required_field in changes and not (changes[required_field] or "").strip():
            raise WorkflowValidationError(f"Document {required_field} must not be empty.", field=required_field)

    for field_name, value in changes.items():
        setattr(document, field_name, value)
    _touch(document, now)
    return TransitionOutcome(WorkflowAction.EDIT_DRAFT, DocumentStatus.DRAFT, DocumentStatus.DRAFT)
