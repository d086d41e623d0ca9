from datetime import datetime
from pydantic import BaseModel, Field


class ThreadCreate(BaseModel):
    title: str | None = Field(None, max_length=255)
    description: str | None = None


class ThreadResponse(BaseModel):
    id: str
    title: str
    description: str | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MessageOut(BaseModel):
    id: str
    role: str  # "user" | "assistant"
    content: str
    model: str | None = None
    created_at: str | None = None


class ThreadDetailResponse(BaseModel):
    thread: ThreadResponse
    messages: list[MessageOut]
