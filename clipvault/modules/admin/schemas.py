import uuid
from datetime import datetime
from pydantic import BaseModel, Field
from clipvault.modules.clips.schemas import CamelModel

class LoginIn(BaseModel):
    password: str = Field(..., min_length=1)

class LoginOut(BaseModel):
    token: str

class AdminClipOut(CamelModel):
    id: uuid.UUID
    title: str
    filename: str
    file_size: int
    mime_type: str
    access_count: int
    last_accessed_at: datetime | None
    created_at: datetime
    share_url: str

class ShareOut(CamelModel):
    share_url: str

class DeleteOut(CamelModel):
    deleted: bool
