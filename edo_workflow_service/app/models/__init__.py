from .enums import DocumentStatus, ApprovalStatus, DocumentType
from .approval_db import ApprovalDB
from .comment_db import CommentDB
from .document_db import DocumentDB, DocumentDetails
from .template_db import TemplateDB
from .stored_event_meta_data import StoredEventMetaData
from .stored_event_db import StoredEventDB

__all__ = [
    "DocumentStatus",
    "ApprovalStatus",
    "DocumentType",
    "ApprovalDB",
    "CommentDB",
    "DocumentDB",
    "DocumentDetails",
    "TemplateDB",
    "StoredEventMetaData",
    "StoredEventDB",
]
