"""
Custom exceptions for the EDO workflow service.
"""
from typing import List, Optional


class BaseWorkflowError(Exception):
    """Base class for exceptions in this module."""
    pass


class WorkflowValidationError(BaseWorkflowError, ValueError):
    """Raised on malformed input: empty title/content, blank rejection comment, bad approver list."""
    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class NotFoundError(BaseWorkflowError):
    """Raised when a referenced record does not exist."""
    pass


class DocumentNotFoundError(NotFoundError):
    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document with ID '{document_id}' not found.")


class TemplateNotFoundError(NotFoundError):
    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Template with ID '{template_id}' not found.")


class InvalidStateError(BaseWorkflowError):
    """Raised when an operation is attempted on a document in a status that does not permit it."""
    def __init__(self, document_id: str, current_state: str, attempted_action: str, allowed_actions: Optional[List[str]] = None):
        self.document_id = document_id
        self.current_state = current_state
        self.attempted_action = attempted_action
        self.allowed_actions = list(allowed_actions or [])
        allowed = ", ".join(self.allowed_actions) or "none"
        super().__init__(
            f"Cannot {attempted_action} document '{document_id}' in state '{current_state}'. Allowed actions: {allowed}."
        )


class NotAnApproverError(BaseWorkflowError):
    """Raised when the actor has no PENDING approval on the document."""
    def __init__(self, document_id: str, approver_id: str):
        self.document_id = document_id
        self.approver_id = approver_id
        super().__init__(f"Actor '{approver_id}' has no pending approval on document '{document_id}'.")


class PermissionDeniedError(BaseWorkflowError):
    """Raised when the permission service or a document policy refuses the actor."""
    def __init__(self, actor_id: str, action: str, document_id: Optional[str] = None):
        self.actor_id = actor_id
        self.action = action
        self.document_id = document_id
        target = f" on document '{document_id}'" if document_id else ""
        super().__init__(f"Actor '{actor_id}' is not allowed to {action}{target}.")


class ConcurrencyConflictError(BaseWorkflowError):
    """Raised when a version conflict is detected during an update operation."""
    def __init__(self, aggregate_id: str, expected_version: int, actual_version: int):
        self.aggregate_id = aggregate_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Concurrency conflict for aggregate '{aggregate_id}'. "
            f"Expected version {expected_version}, but found {actual_version}."
        )


class ConfigurationError(BaseWorkflowError):
    """Raised when a configuration issue is detected."""
    pass


class KafkaProducerError(BaseWorkflowError):
    """Raised when there's an issue with Kafka message production."""
    pass
