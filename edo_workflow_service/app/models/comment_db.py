import datetime
import uuid

from pydantic import BaseModel, Field


class CommentDB(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4().hex))
    document_id: str
    author_id: str
    content: str
    created_at: datetime.datetime = Field(default_factory=lambda: datetime.datetime.now(datetime.UTC))
