# Kafka publisher for workflow domain events
import asyncio
import logging
from typing import Optional

from confluent_kafka import KafkaException, Producer

from edo_workflow_service.app.config import settings
from edo_workflow_service.app.models.events.models import BaseEvent
from edo_workflow_service.app.service.exceptions import ConfigurationError, KafkaProducerError

logger = logging.getLogger(__name__)


class KafkaEventPublisher:
    """Publishes domain events keyed by aggregate id, so every event of one
    document lands on the same partition in commit order."""

    def __init__(self, bootstrap_servers: str, topic: str):
        self.topic = topic
        self.producer_config = {
            'bootstrap.servers': bootstrap_servers,
            'enable.idempotence': True,
            'acks': 'all',
        }
        self.producer = Producer(self.producer_config)
        self._cancelled = False
        self._poll_loop_task: Optional[asyncio.Task] = None
        logger.info(f"KafkaEventPublisher initialized with servers: {bootstrap_servers}, topic: {topic}")

    def _delivery_report(self, err, msg):
        if err is not None:
            logger.error(f'Event delivery failed: Topic {msg.topic()} Key {msg.key()}: {err}')
        else:
            logger.debug(f'Event delivered: Topic {msg.topic()} Key {msg.key()} Partition [{msg.partition()}] @ Offset {msg.offset()}')

    async def _poll_loop(self):
        while not self._cancelled:
            self.producer.poll(0.1)
            await asyncio.sleep(0.1)
        logger.info("KafkaEventPublisher poll loop stopped.")

    def publish_event(self, event: BaseEvent) -> None:
        """Enqueues the event; delivery is reported asynchronously by the poll loop."""
        if self._cancelled:
            raise KafkaProducerError(f"Publisher is stopped; event {event.event_id} ({event.event_type}) was not published.")

        value_json = event.model_dump_json()
        try:
            self.producer.produce(
                self.topic,
                value=value_json.encode('utf-8'),
                key=event.aggregate_id.encode('utf-8'),
                headers=[('event_type', event.event_type.encode('utf-8'))],
                callback=self._delivery_report,
            )
        except BufferError as e:
            logger.error(f"Kafka producer queue full. Event {event.event_id} not produced. Error: {e}")
            raise KafkaProducerError(f"Kafka producer queue is full: {e}") from e
        except KafkaException as e:
            logger.error(f"Error producing event {event.event_id} to Kafka topic {self.topic}: {e}", exc_info=True)
            raise KafkaProducerError(str(e)) from e
        logger.debug(f"Event {event.event_type} enqueued to topic {self.topic} (key: {event.aggregate_id})")

    async def start_polling(self):
        if self._poll_loop_task is None or self._poll_loop_task.done():
            self._cancelled = False
            self._poll_loop_task = asyncio.create_task(self._poll_loop())
            logger.info("KafkaEventPublisher polling started.")

    async def stop_polling(self):
        if self._poll_loop_task and not self._cancelled:
            self._cancelled = True
            try:
                await asyncio.wait_for(self._poll_loop_task, timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("KafkaEventPublisher poll loop did not stop in time.")
            self._poll_loop_task = None

    def flush(self, timeout: float = 10.0) -> int:
        remaining = self.producer.flush(timeout)
        if remaining > 0:
            logger.warning(f"{remaining} events still in Kafka producer queue after flush timeout.")
        else:
            logger.info("All Kafka events flushed successfully.")
        return remaining


_publisher_instance: Optional[KafkaEventPublisher] = None


def get_event_publisher() -> KafkaEventPublisher:
    global _publisher_instance
    if _publisher_instance is None:
        if not settings.KAFKA_BOOTSTRAP_SERVERS:
            logger.error("KAFKA_BOOTSTRAP_SERVERS not configured in settings. KafkaEventPublisher cannot be initialized.")
            raise ConfigurationError("KAFKA_BOOTSTRAP_SERVERS not configured.")
        _publisher_instance = KafkaEventPublisher(
            bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
            topic=settings.WORKFLOW_EVENTS_TOPIC,
        )
    return _publisher_instance


async def startup_event_publisher():
    publisher = get_event_publisher()
    await publisher.start_polling()


async def shutdown_event_publisher():
    global _publisher_instance
    if _publisher_instance:
        logger.info("Flushing Kafka event publisher before shutdown...")
        _publisher_instance.flush()
        await _publisher_instance.stop_polling()
        _publisher_instance = None
        logger.info("Kafka event publisher shutdown complete.")
    else:
        logger.info("Kafka event publisher was not initialized, skipping shutdown steps.")


def get_optional_event_publisher() -> Optional[KafkaEventPublisher]:
    """FastAPI dependency: the shared publisher, or None when Kafka is not configured."""
    if not settings.KAFKA_BOOTSTRAP_SERVERS:
        return None
    return get_event_publisher()
