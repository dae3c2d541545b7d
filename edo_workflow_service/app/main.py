# FastAPI Application Entry Point
import httpx
from fastapi import FastAPI

# Configuration and Observability
from edo_workflow_service.app.config import settings
from edo_workflow_service.app.observability import setup_opentelemetry, logger

# Initialize OpenTelemetry before the instrumentors are imported
setup_opentelemetry(service_name=settings.SERVICE_NAME_API)

from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.pymongo import PymongoInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from edo_workflow_service.infrastructure.database import connection
from edo_workflow_service.infrastructure.kafka.producer import startup_event_publisher, shutdown_event_publisher

# API Routers
from edo_workflow_service.app.api.v1.endpoints import health as health_router
from edo_workflow_service.app.api.v1.endpoints import documents as documents_router
from edo_workflow_service.app.api.v1.endpoints import templates as templates_router

app = FastAPI(
    title="EDO Document Approval Workflow Service",
    description="Drives EDO documents from draft through multi-approver consensus to a final disposition.",
    version="1.0.0"
)


@app.on_event("startup")
async def startup_event():
    logger.info("FastAPI application startup...")

    app.state.http_client = httpx.AsyncClient(timeout=settings.DEFAULT_HTTP_TIMEOUT)
    HTTPXClientInstrumentor().instrument()
    logger.info(f"HTTPX AsyncClient initialized with timeout {settings.DEFAULT_HTTP_TIMEOUT} and instrumented.")

    PymongoInstrumentor().instrument()
    await connection.connect_to_mongo()
    await connection.ensure_indexes(connection.db)
    logger.info("MongoDB connection established and indexes ensured.")

    if settings.KAFKA_BOOTSTRAP_SERVERS:
        await startup_event_publisher()
        logger.info("Kafka event publisher polling started.")
    else:
        logger.warning("KAFKA_BOOTSTRAP_SERVERS not set; domain events are kept in the event store only.")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("FastAPI application shutdown...")

    if getattr(app.state, 'http_client', None):
        await app.state.http_client.aclose()
        logger.info("HTTPX AsyncClient closed.")

    await shutdown_event_publisher()

    connection.close_mongo_connection()


FastAPIInstrumentor.instrument_app(app)
logger.info("FastAPI instrumentation complete.")

app.include_router(health_router.router)
app.include_router(documents_router.router, prefix="/api/v1/documents", tags=["Documents"])
app.include_router(templates_router.router, prefix="/api/v1/templates", tags=["Templates"])

logger.info("API routers included. Application setup complete.")

# To run: uvicorn edo_workflow_service.app.main:app --reload --port 8000
