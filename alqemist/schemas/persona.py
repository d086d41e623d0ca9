from datetime import datetime
from pydantic import BaseModel, Field


class PersonaData(BaseModel):
    name: str | None = Field(None, max_length=255)
    description: str | None = None
    avatar: str | None = None
    is_active: bool | None = None
    is_default: bool | None = None
    personality: dict | None = None
    knowledge: dict | None = None
    behavior: dict | None = None
    custom_prompts: dict | None = None
    tags: list[str] | None = None


class PersonaCreate(BaseModel):
    """Either persona_data alone, or action "from-template" with template_id and optional persona_data."""
    action: str | None = None
    template_id: str | None = None
    persona_data: PersonaData = PersonaData()


class PersonaPatch(BaseModel):
    action: str = "update"
    persona_data: PersonaData = PersonaData()


class PersonaResponse(BaseModel):
    id: str
    name: str
    description: str
    avatar: str | None
    is_active: bool
    is_default: bool
    personality: dict
    knowledge: dict
    behavior: dict
    custom_prompts: dict
    usage_count: int
    last_used: datetime
    is_public: bool
    tags: list
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
