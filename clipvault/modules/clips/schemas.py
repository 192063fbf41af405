import uuid
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

class ClipPublicOut(CamelModel):
    id: uuid.UUID
    title: str
    file_size: int
    mime_type: str
    created_at: datetime

class VerifyIn(BaseModel):
    password: str = Field(..., min_length=1)

class VerifiedClipOut(CamelModel):
    id: uuid.UUID
    title: str
    filename: str
    mime_type: str
    file_size: int
    access_count: int

class VerifyOut(CamelModel):
    success: bool = True
    clip: VerifiedClipOut
    stream_token: str
