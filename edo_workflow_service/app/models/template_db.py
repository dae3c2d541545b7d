import datetime
import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import DocumentType


class TemplateDB(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4().hex))
    name: str
    type: DocumentType
    content: str
    variables: Optional[Dict[str, Any]] = None  # Placeholder name -> human label, opaque to the engine
    is_default: bool = False
    is_active: bool = True
    created_by: Optional[str] = None

    created_at: datetime.datetime = Field(default_factory=lambda: datetime.datetime.now(datetime.UTC))
    updated_at: datetime.datetime = Field(default_factory=lambda: datetime.datetime.now(datetime.UTC))
