from enum import Enum


class DocumentStatus(str, Enum):
    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class DocumentType(str, Enum):
    # Closed catalog; new kinds require a catalog update here
    CERTIFICATE = "CERTIFICATE"
    ORDER = "ORDER"
    CONTRACT = "CONTRACT"
    STUDENT_CERTIFICATE = "STUDENT_CERTIFICATE"
    ENROLLMENT_ORDER = "ENROLLMENT_ORDER"
    ADMINISTRATIVE_ORDER = "ADMINISTRATIVE_ORDER"
    FINANCIAL_CONTRACT = "FINANCIAL_CONTRACT"
    ACADEMIC_TRANSCRIPT = "ACADEMIC_TRANSCRIPT"
