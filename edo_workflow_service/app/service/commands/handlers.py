# Command Handler Implementation
import asyncio
import datetime
import logging
from typing import Awaitable, Callable, List, Optional, Tuple, TypeVar

from motor.motor_asyncio import AsyncIOMotorDatabase
from opentelemetry import trace

from .models import (
    AddCommentCommand,
    ApprovalDecisionCommand,
    BaseCommand,
    CreateDocumentCommand,
    DeleteDocumentCommand,
    MarkCompletedCommand,
    SendForApprovalCommand,
    UpdateDocumentCommand,
)
from edo_workflow_service.app.config import settings
from edo_workflow_service.app.models.comment_db import CommentDB
from edo_workflow_service.app.models.document_db import DocumentDB
from edo_workflow_service.app.models.enums import DocumentStatus
from edo_workflow_service.app.models.events import models as domain_event_models
from edo_workflow_service.app.observability import (
    domain_events_published_counter,
    workflow_concurrency_retries_counter,
    workflow_transitions_counter,
)
from edo_workflow_service.app.service import state_machine
from edo_workflow_service.app.service import templates as template_service
from edo_workflow_service.app.service.exceptions import (
    ConcurrencyConflictError,
    DocumentNotFoundError,
    KafkaProducerError,
    PermissionDeniedError,
    WorkflowValidationError,
)
from edo_workflow_service.app.service.strategies.numbering_strategies import get_numbering_strategy
from edo_workflow_service.infrastructure.database import comment_store, document_store
from edo_workflow_service.infrastructure.database.event_store import save_event
from edo_workflow_service.infrastructure.kafka.producer import KafkaEventPublisher


logger = logging.getLogger(__name__)

T = TypeVar("T")


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _annotate_span(command: BaseCommand, document_id: Optional[str] = None) -> trace.Span:
    current_span = trace.get_current_span()
    current_span.set_attribute("command.name", type(command).__name__)
    current_span.set_attribute("command.id", command.command_id)
    current_span.set_attribute("actor.id", command.actor_id)
    if document_id:
        current_span.set_attribute("document.id", document_id)
    return current_span


def _event_metadata(command: BaseCommand) -> domain_event_models.EventMetaData:
    return domain_event_models.EventMetaData(
        correlation_id=command.correlation_id or command.command_id,
        causation_id=command.command_id,
        actor_id=command.actor_id,
    )


def _ensure_may_edit(document: DocumentDB, actor_id: str, action: str) -> None:
    # Drafts belong to their creator and the assigned responsible person
    if actor_id not in (document.created_by, document.responsible):
        raise PermissionDeniedError(actor_id=actor_id, action=action, document_id=document.id)


def _count_transition(outcome: state_machine.TransitionOutcome) -> None:
    workflow_transitions_counter.add(1, {
        "action": outcome.action.value,
        "status": DocumentStatus(outcome.new_status).value,
    })


async def _mutate_aggregate(
    db: AsyncIOMotorDatabase,
    document_id: str,
    mutate: Callable[[DocumentDB], T],
    command_name: str,
    persist: Optional[Callable[[AsyncIOMotorDatabase, DocumentDB], Awaitable[Optional[DocumentDB]]]] = None,
) -> Tuple[Optional[DocumentDB], T]:
    """Runs one load-mutate-save cycle on the document aggregate.

    `mutate` works on a freshly loaded copy and may raise any workflow error,
    which ends the command. Only a version conflict on save triggers a reload
    and another attempt, up to WORKFLOW_MAX_ATTEMPTS, with linear backoff.
    """
    persist = persist or document_store.save_document
    attempt = 0
    while True:
        attempt += 1
        document = await document_store.load_for_update(db, document_id)
        outcome = mutate(document)
        try:
            saved = await persist(db, document)
        except ConcurrencyConflictError as e:
            if attempt >= settings.WORKFLOW_MAX_ATTEMPTS:
                logger.warning(f"{command_name} on document {document_id} gave up after {attempt} conflicting attempts: {e}")
                raise
            workflow_concurrency_retries_counter.add(1, {"command.name": command_name})
            trace.get_current_span().add_event("ConcurrencyConflictRetry", {"attempt": attempt})
            logger.info(f"{command_name} on document {document_id} hit a version conflict (attempt {attempt}); reloading.")
            await asyncio.sleep(settings.WORKFLOW_RETRY_BACKOFF_SECONDS * attempt)
            continue
        return saved, outcome


async def _record_and_publish(
    db: AsyncIOMotorDatabase,
    events: List[domain_event_models.BaseEvent],
    event_publisher: Optional[KafkaEventPublisher],
) -> None:
    """Appends committed events to the event store, then publishes them.

    Runs only after the aggregate commit, so a failed publish leaves the
    stored events as the record to replay from.
    """
    current_span = trace.get_current_span()
    for event in events:
        await save_event(db, event)

    if event_publisher is None:
        logger.debug(f"No event publisher configured; {len(events)} event(s) kept in the event store only.")
        return

    for event in events:
        try:
            event_publisher.publish_event(event)
        except KafkaProducerError as e:
            logger.error(f"Failed to publish {event.event_type} for document {event.aggregate_id}: {e}", exc_info=True)
            current_span.record_exception(e)
            raise
        domain_events_published_counter.add(1, {"event.type": event.event_type})
        current_span.add_event(f"{event.event_type}Published", {"event.id": event.event_id})


def _require_text(value: Optional[str], field_name: str) -> str:
    if value is None or not value.strip():
        raise WorkflowValidationError(f"Document {field_name} must not be empty.", field=field_name)
    return value


# --- Document lifecycle ---

async def handle_create_document(
    db: AsyncIOMotorDatabase,
    command: CreateDocumentCommand,
    event_publisher: Optional[KafkaEventPublisher] = None,
) -> DocumentDB:
    current_span = _annotate_span(command)
    current_span.set_attribute("document.type", command.type)
    logger.info(f"Handling CreateDocumentCommand: {command.command_id} by {command.actor_id}, type: {command.type}")

    # Checked up front so a bad approver list does not leave an orphan draft behind
    if command.approver_ids is not None:
        state_machine.validate_approver_ids(command.approver_ids, command.actor_id)

    template = await template_service.resolve_template_for_creation(
        db, command.type, command.template_id, command.content
    )
    title = command.title
    content = command.content
    if template is not None:
        if not (content and content.strip()):
            content = template.content
        if not (title and title.strip()):
            title = template.name

    file_refs = list(dict.fromkeys(ref.strip() for ref in command.file_refs if ref and ref.strip()))

    document = DocumentDB(
        title=_require_text(title, "title").strip(),
        type=command.type,
        content=_require_text(content, "content"),
        created_by=command.actor_id,
        responsible=command.responsible,
        student_ref=command.student_ref,
        deadline=command.deadline,
        file_refs=file_refs,
        template_id=template.id if template else None,
    )
    await document_store.insert_document(db, document)
    current_span.set_attribute("document.id", document.id)

    created_event = domain_event_models.DocumentCreatedEvent(
        aggregate_id=document.id,
        version=document.version,
        payload=domain_event_models.DocumentCreatedEventPayload(
            title=document.title,
            type=document.type,
            created_by=document.created_by,
            template_id=document.template_id,
            file_refs=document.file_refs,
        ),
        metadata=_event_metadata(command),
    )
    await _record_and_publish(db, [created_event], event_publisher)
    logger.info(f"Created document {document.id} in DRAFT for {command.actor_id}.")

    if command.approver_ids is not None:
        send_command = SendForApprovalCommand(
            actor_id=command.actor_id,
            correlation_id=command.correlation_id or command.command_id,
            document_id=document.id,
            approver_ids=command.approver_ids,
        )
        return await handle_send_for_approval(db, send_command, event_publisher)
    return document


async def handle_update_document(db: AsyncIOMotorDatabase, command: UpdateDocumentCommand) -> DocumentDB:
    _annotate_span(command, command.document_id)
    logger.info(f"Handling UpdateDocumentCommand for document {command.document_id}, fields: {sorted(command.changes)}")
    now = _now()

    def mutate(document: DocumentDB) -> state_machine.TransitionOutcome:
        state_machine.ensure_action_allowed(document, state_machine.WorkflowAction.EDIT_DRAFT)
        _ensure_may_edit(document, command.actor_id, "edit")
        return state_machine.edit_draft(document, command.changes, now)

    if not command.changes:
        document = await document_store.load_for_update(db, command.document_id)
        mutate(document)
        return document

    saved, outcome = await _mutate_aggregate(db, command.document_id, mutate, "UpdateDocumentCommand")
    _count_transition(outcome)
    return saved


async def handle_send_for_approval(
    db: AsyncIOMotorDatabase,
    command: SendForApprovalCommand,
    event_publisher: Optional[KafkaEventPublisher] = None,
) -> DocumentDB:
    current_span = _annotate_span(command, command.document_id)
    current_span.set_attribute("approvers.count", len(command.approver_ids))
    logger.info(f"Handling SendForApprovalCommand for document {command.document_id} with {len(command.approver_ids)} approver(s)")
    now = _now()

    document = await document_store.load_for_update(db, command.document_id)
    state_machine.ensure_action_allowed(document, state_machine.WorkflowAction.SEND_FOR_APPROVAL)
    _ensure_may_edit(document, command.actor_id, "send for approval")
    approver_ids = state_machine.validate_approver_ids(command.approver_ids, document.created_by)
    if command.changes:
        state_machine.edit_draft(document, command.changes, now)

    # Drawn once every check has passed, so retries reuse the same number.
    # A send that then loses the race to a concurrent send leaves a gap.
    number = document.number
    if number is None:
        number = await get_numbering_strategy(document.type).next_number(db, document.type, now)

    def mutate(current: DocumentDB) -> state_machine.TransitionOutcome:
        _ensure_may_edit(current, command.actor_id, "send for approval")
        if command.changes:
            state_machine.edit_draft(current, command.changes, now)
        return state_machine.send_for_approval(current, approver_ids, number, now)

    saved, outcome = await _mutate_aggregate(db, command.document_id, mutate, "SendForApprovalCommand")
    _count_transition(outcome)

    sent_event = domain_event_models.DocumentSentForApprovalEvent(
        aggregate_id=saved.id,
        version=saved.version,
        payload=domain_event_models.DocumentSentForApprovalEventPayload(
            number=saved.number,
            approver_ids=[a.approver_id for a in saved.approvals],
            sent_by=command.actor_id,
        ),
        metadata=_event_metadata(command),
    )
    await _record_and_publish(db, [sent_event], event_publisher)
    logger.info(f"Document {saved.id} sent for approval as {saved.number} to {len(saved.approvals)} approver(s).")
    return saved


async def handle_approval_decision(
    db: AsyncIOMotorDatabase,
    command: ApprovalDecisionCommand,
    event_publisher: Optional[KafkaEventPublisher] = None,
) -> DocumentDB:
    current_span = _annotate_span(command, command.document_id)
    current_span.set_attribute("approval.decision", command.decision)
    logger.info(f"Handling ApprovalDecisionCommand: {command.decision} on document {command.document_id} by {command.actor_id}")
    now = _now()

    def mutate(document: DocumentDB) -> state_machine.TransitionOutcome:
        return state_machine.record_decision(document, command.actor_id, command.decision, command.comment, now)

    saved, outcome = await _mutate_aggregate(db, command.document_id, mutate, "ApprovalDecisionCommand")
    _count_transition(outcome)

    metadata = _event_metadata(command)
    approval = outcome.approval
    events: List[domain_event_models.BaseEvent] = [
        domain_event_models.ApprovalRecordedEvent(
            aggregate_id=saved.id,
            version=saved.version,
            payload=domain_event_models.ApprovalRecordedEventPayload(
                approval_id=approval.id,
                approver_id=approval.approver_id,
                decision=approval.status,
                comment=approval.comment,
                document_status=outcome.new_status,
            ),
            metadata=metadata,
        )
    ]
    if outcome.status_changed and outcome.new_status == DocumentStatus.APPROVED:
        events.append(domain_event_models.DocumentApprovedEvent(
            aggregate_id=saved.id,
            version=saved.version,
            payload=domain_event_models.DocumentApprovedEventPayload(
                number=saved.number,
                approver_ids=[a.approver_id for a in saved.approvals],
            ),
            metadata=metadata,
        ))
    elif outcome.status_changed and outcome.new_status == DocumentStatus.REJECTED:
        events.append(domain_event_models.DocumentRejectedEvent(
            aggregate_id=saved.id,
            version=saved.version,
            payload=domain_event_models.DocumentRejectedEventPayload(
                number=saved.number,
                rejected_by=command.actor_id,
                comment=approval.comment,
            ),
            metadata=metadata,
        ))
    await _record_and_publish(db, events, event_publisher)

    current_span.set_attribute("document.status", outcome.new_status.value)
    logger.info(
        f"Recorded {approval.status} by {command.actor_id} on document {saved.id}; "
        f"document status {outcome.previous_status.value} -> {outcome.new_status.value}."
    )
    return saved


async def handle_mark_completed(
    db: AsyncIOMotorDatabase,
    command: MarkCompletedCommand,
    event_publisher: Optional[KafkaEventPublisher] = None,
) -> DocumentDB:
    _annotate_span(command, command.document_id)
    logger.info(f"Handling MarkCompletedCommand for document {command.document_id} by {command.actor_id}")
    now = _now()

    saved, outcome = await _mutate_aggregate(
        db, command.document_id, lambda document: state_machine.mark_completed(document, now), "MarkCompletedCommand"
    )
    _count_transition(outcome)

    completed_event = domain_event_models.DocumentCompletedEvent(
        aggregate_id=saved.id,
        version=saved.version,
        payload=domain_event_models.DocumentCompletedEventPayload(
            number=saved.number,
            completed_by=command.actor_id,
        ),
        metadata=_event_metadata(command),
    )
    await _record_and_publish(db, [completed_event], event_publisher)
    return saved


async def _delete_aggregate(db: AsyncIOMotorDatabase, document: DocumentDB) -> None:
    await document_store.delete_document(db, document.id, document.version)


async def handle_delete_document(db: AsyncIOMotorDatabase, command: DeleteDocumentCommand) -> None:
    _annotate_span(command, command.document_id)
    logger.info(f"Handling DeleteDocumentCommand for document {command.document_id} by {command.actor_id}")

    def mutate(document: DocumentDB) -> state_machine.TransitionOutcome:
        state_machine.ensure_action_allowed(document, state_machine.WorkflowAction.DELETE)
        if document.created_by != command.actor_id:
            raise PermissionDeniedError(actor_id=command.actor_id, action="delete", document_id=document.id)
        return state_machine.TransitionOutcome(
            state_machine.WorkflowAction.DELETE, DocumentStatus.DRAFT, DocumentStatus.DRAFT
        )

    await _mutate_aggregate(db, command.document_id, mutate, "DeleteDocumentCommand", persist=_delete_aggregate)
    await comment_store.delete_comments_for_document(db, command.document_id)
    logger.info(f"Draft document {command.document_id} deleted by {command.actor_id}.")


# --- Comment thread ---

async def handle_add_comment(
    db: AsyncIOMotorDatabase,
    command: AddCommentCommand,
    event_publisher: Optional[KafkaEventPublisher] = None,
) -> CommentDB:
    _annotate_span(command, command.document_id)
    logger.info(f"Handling AddCommentCommand for document {command.document_id} by {command.actor_id}")

    if command.content is None or not command.content.strip():
        raise WorkflowValidationError("Comment content must not be empty.", field="content")

    # Comments do not take part in the aggregate version check
    document = await document_store.get_document(db, command.document_id)
    if document is None:
        raise DocumentNotFoundError(document_id=command.document_id)

    comment = CommentDB(
        document_id=document.id,
        author_id=command.actor_id,
        content=command.content.strip(),
    )
    await comment_store.add_comment(db, comment)

    comment_event = domain_event_models.CommentAddedEvent(
        aggregate_id=document.id,
        version=document.version,
        payload=domain_event_models.CommentAddedEventPayload(
            comment_id=comment.id,
            author_id=comment.author_id,
        ),
        metadata=_event_metadata(command),
    )
    await _record_and_publish(db, [comment_event], event_publisher)
    return comment
