from datetime import datetime
from pydantic import BaseModel, Field


class SuggestionRequest(BaseModel):
    action: str


class SuggestionPatch(BaseModel):
    action: str  # mark_shown | dismiss | interact | complete


class SuggestionResponse(BaseModel):
    id: str
    type: str
    title: str
    description: str
    confidence: float
    priority: str
    metadata: dict = Field(default_factory=dict, validation_alias="metadata_")
    actions: list
    created_at: datetime
    expires_at: datetime | None
    shown: bool
    dismissed: bool
    interacted_at: datetime | None

    class Config:
        from_attributes = True
