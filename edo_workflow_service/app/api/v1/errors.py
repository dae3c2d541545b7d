# Mapping of workflow errors to HTTP responses
import logging

from fastapi import HTTPException

from edo_workflow_service.app.service.exceptions import (
    BaseWorkflowError,
    ConcurrencyConflictError,
    InvalidStateError,
    KafkaProducerError,
    NotAnApproverError,
    NotFoundError,
    PermissionDeniedError,
    WorkflowValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_CODES = (
    (WorkflowValidationError, 400),
    (NotFoundError, 404),
    (NotAnApproverError, 403),
    (PermissionDeniedError, 403),
    (InvalidStateError, 409),
    (ConcurrencyConflictError, 409),
    (KafkaProducerError, 502),
)


def to_http_exception(error: BaseWorkflowError) -> HTTPException:
    for error_class, status_code in _STATUS_CODES:
        if isinstance(error, error_class):
            if status_code >= 500:
                logger.error(f"{type(error).__name__}: {error}", exc_info=True)
            else:
                logger.warning(f"{type(error).__name__}: {error}")
            return HTTPException(status_code=status_code, detail=str(error))
    logger.error(f"Unmapped workflow error {type(error).__name__}: {error}", exc_info=True)
    return HTTPException(status_code=500, detail="An unexpected workflow error occurred.")
