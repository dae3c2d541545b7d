# Tests for the domain event store
import pytest
from mongomock_motor import AsyncMongoMockClient

from edo_workflow_service.app.models import DocumentType
from edo_workflow_service.app.models.events import models as domain_event_models
from edo_workflow_service.infrastructure.database import event_store


@pytest.fixture
def db():
    return AsyncMongoMockClient()["test_edo_events"]


def created_event(aggregate_id: str) -> domain_event_models.DocumentCreatedEvent:
    return domain_event_models.DocumentCreatedEvent(
        aggregate_id=aggregate_id,
        version=1,
        payload=domain_event_models.DocumentCreatedEventPayload(
            title="Certificate", type=DocumentType.CERTIFICATE, created_by="u1", file_refs=["f1"]
        ),
        metadata=domain_event_models.EventMetaData(actor_id="u1", correlation_id="corr-1"),
    )


@pytest.mark.asyncio
async def test_save_and_read_back_typed_events_in_version_order(db):
    sent = domain_event_models.DocumentSentForApprovalEvent(
        aggregate_id="doc-1",
        version=2,
        payload=domain_event_models.DocumentSentForApprovalEventPayload(number="CERT-2024-0001", approver_ids=["A"], sent_by="u1"),
    )
    await event_store.save_event(db, sent)
    await event_store.save_event(db, created_event("doc-1"))
    await event_store.save_event(db, created_event("doc-2"))

    events = await event_store.get_events_for_aggregate(db, "doc-1")

    assert [type(e) for e in events] == [
        domain_event_models.DocumentCreatedEvent,
        domain_event_models.DocumentSentForApprovalEvent,
    ]
    assert events[0].payload.type == DocumentType.CERTIFICATE
    assert events[0].payload.file_refs == ["f1"]
    assert events[0].metadata.correlation_id == "corr-1"
    assert events[1].payload.number == "CERT-2024-0001"


@pytest.mark.asyncio
async def test_events_sharing_an_aggregate_version_are_all_kept(db):
    comment_event = domain_event_models.CommentAddedEvent(
        aggregate_id="doc-1",
        version=1,
        payload=domain_event_models.CommentAddedEventPayload(comment_id="c1", author_id="u2"),
    )
    await event_store.save_event(db, created_event("doc-1"))
    await event_store.save_event(db, comment_event)

    events = await event_store.get_events_for_aggregate(db, "doc-1")
    assert {e.event_type for e in events} == {"DocumentCreated", "CommentAdded"}


@pytest.mark.asyncio
async def test_unknown_event_types_are_skipped(db):
    await db[event_store.EVENT_STORE_COLLECTION].insert_one({
        "event_id": "x", "event_type": "Mystery", "aggregate_id": "doc-1", "version": 1,
        "payload": {}, "metadata": {},
    })
    assert await event_store.get_events_for_aggregate(db, "doc-1") == []
