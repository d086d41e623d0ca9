from typing import Literal
from pydantic import AliasChoices, BaseModel, Field


class ChatMessageIn(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str = Field(..., max_length=100_000)


class ChatRequest(BaseModel):
    messages: list[ChatMessageIn] = Field(..., min_length=1)
    thread_id: str | None = Field(None, validation_alias=AliasChoices("thread_id", "threadId"))
    model: str | None = None
    strategy: Literal["cost", "speed", "quality", "balanced"] | None = None
    has_attachments: bool = False
    expected_output_length: Literal["short", "medium", "long"] = "medium"


class RecommendRequest(BaseModel):
    input_text: str = ""
    has_attachments: bool = False
    expected_output_length: Literal["short", "medium", "long"] = "medium"
    strategy: Literal["cost", "speed", "quality", "balanced"] | None = None
