# Event Store Logic (Saving and Retrieving Domain Events)
import logging
from typing import List

from motor.motor_asyncio import AsyncIOMotorDatabase

from edo_workflow_service.app.models.stored_event_db import StoredEventDB
from edo_workflow_service.app.models.events.models import (
    BaseEvent, EventMetaData,
    DocumentCreatedEvent, DocumentCreatedEventPayload,
    DocumentSentForApprovalEvent, DocumentSentForApprovalEventPayload,
    ApprovalRecordedEvent, ApprovalRecordedEventPayload,
    DocumentApprovedEvent, DocumentApprovedEventPayload,
    DocumentRejectedEvent, DocumentRejectedEventPayload,
    DocumentCompletedEvent, DocumentCompletedEventPayload,
    CommentAddedEvent, CommentAddedEventPayload,
)

logger = logging.getLogger(__name__)

# Event type strings are as defined in the event_type attribute of each event model
EVENT_CLASS_MAP = {
    "DocumentCreated": DocumentCreatedEvent,
    "DocumentSentForApproval": DocumentSentForApprovalEvent,
    "ApprovalRecorded": ApprovalRecordedEvent,
    "DocumentApproved": DocumentApprovedEvent,
    "DocumentRejected": DocumentRejectedEvent,
    "DocumentCompleted": DocumentCompletedEvent,
    "CommentAdded": CommentAddedEvent,
}

PAYLOAD_CLASS_MAP = {
    "DocumentCreatedEventPayload": DocumentCreatedEventPayload,
    "DocumentSentForApprovalEventPayload": DocumentSentForApprovalEventPayload,
    "ApprovalRecordedEventPayload": ApprovalRecordedEventPayload,
    "DocumentApprovedEventPayload": DocumentApprovedEventPayload,
    "DocumentRejectedEventPayload": DocumentRejectedEventPayload,
    "DocumentCompletedEventPayload": DocumentCompletedEventPayload,
    "CommentAddedEventPayload": CommentAddedEventPayload,
}
EVENT_STORE_COLLECTION = "domain_events"


async def save_event(db: AsyncIOMotorDatabase, event_data: BaseEvent) -> BaseEvent:
    """Appends an event to the log.

    Ordering is already guaranteed by the aggregate's version check, so the
    log accepts several events carrying the same aggregate version.
    """
    stored_event_dict = StoredEventDB(
        event_id=event_data.event_id,
        event_type=event_data.event_type,
        aggregate_id=event_data.aggregate_id,
        timestamp=event_data.timestamp,
        version=event_data.version,
        payload=event_data.payload.model_dump(mode="json"),
        metadata=event_data.metadata.model_dump(),
    ).model_dump()

    await db[EVENT_STORE_COLLECTION].insert_one(stored_event_dict)
    logger.info(f"Event '{event_data.event_type}' (ID: {event_data.event_id}) saved for aggregate {event_data.aggregate_id} with version {event_data.version}.")
    return event_data


async def get_events_for_aggregate(db: AsyncIOMotorDatabase, aggregate_id: str) -> List[BaseEvent]:
    stored_events_cursor = db[EVENT_STORE_COLLECTION].find({"aggregate_id": aggregate_id}).sort(
        [("version", 1), ("timestamp", 1)]
    )

    deserialized_domain_events: List[BaseEvent] = []
    async for event_doc in stored_events_cursor:
        stored_event = StoredEventDB(**event_doc)

        domain_event_class = EVENT_CLASS_MAP.get(stored_event.event_type)
        if domain_event_class is None:
            logger.warning(f"Domain event class for event_type '{stored_event.event_type}' not found in EVENT_CLASS_MAP. Aggregate: {aggregate_id}")
            continue

        payload_class = PAYLOAD_CLASS_MAP[domain_event_class.payload_model_name]
        deserialized_domain_events.append(domain_event_class(
            event_id=stored_event.event_id,
            aggregate_id=stored_event.aggregate_id,
            timestamp=stored_event.timestamp,
            version=stored_event.version,
            payload=payload_class(**stored_event.payload),
            metadata=EventMetaData(**stored_event.metadata.model_dump()),
        ))

    logger.info(f"Retrieved and deserialized {len(deserialized_domain_events)} events for aggregate {aggregate_id}.")
    return deserialized_domain_events
