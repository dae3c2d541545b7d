# Application Configuration using Pydantic BaseSettings
import logging
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    # MongoDB
    MONGO_DETAILS: str = "mongodb://mongo:27017"
    DB_NAME: str = "edo_workflow_db"

    # Kafka
    KAFKA_BOOTSTRAP_SERVERS: Optional[str] = "kafka:29092"
    WORKFLOW_EVENTS_TOPIC: str = "edo_workflow_events"

    # Observability
    LOG_LEVEL: str = "INFO"
    OTEL_EXPORTER_OTLP_TRACES_ENDPOINT: Optional[str] = None
    OTEL_EXPORTER_OTLP_METRICS_ENDPOINT: Optional[str] = None
    SERVICE_NAME_API: str = "edo-workflow-api"

    # External permission service; when unset every action is allowed
    PERMISSION_SERVICE_URL: Optional[str] = None  # e.g. http://permissions:8081/api/v1
    DEFAULT_HTTP_TIMEOUT: float = 5.0

    # Aggregate write retries on optimistic-lock conflicts
    WORKFLOW_MAX_ATTEMPTS: int = 3
    WORKFLOW_RETRY_BACKOFF_SECONDS: float = 0.05

    # Document listing
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Instantiate settings to be imported by other modules
settings = AppSettings()

logger = logging.getLogger(__name__)
logger.info("Application settings module initialized.")
