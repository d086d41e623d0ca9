from datetime import datetime
from typing import Literal
from pydantic import BaseModel, Field

from alqemist.models.scheduled_task import RecurrencePattern, TaskType


class CustomRecurrence(BaseModel):
    interval: int = Field(1, ge=1)
    unit: Literal["minutes", "hours", "days", "weeks", "months"] = "days"
    end_date: datetime | None = None
    max_occurrences: int | None = Field(None, ge=1)


class TaskMetadata(BaseModel):
    priority: Literal["low", "medium", "high"] = "medium"
    category: str = "general"
    related_thread_id: str | None = None
    reminder_type: Literal["deadline", "meeting", "task", "birthday", "custom"] | None = None
    notification_channels: list[Literal["email", "push", "sms"]] = ["push"]
    custom_recurrence: CustomRecurrence | None = None


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    task_type: TaskType = TaskType.REMINDER
    scheduled_for: datetime
    recurrence_pattern: RecurrencePattern | None = None
    metadata: TaskMetadata = TaskMetadata()


class TaskAction(BaseModel):
    action: str
    snooze_minutes: int = Field(60, ge=1, le=60 * 24 * 30)


class TaskResponse(BaseModel):
    id: str
    title: str
    description: str | None
    task_type: str
    scheduled_for: datetime
    recurrence_pattern: str | None
    status: str
    metadata: dict = Field(default_factory=dict, validation_alias="metadata_")
    series_id: str | None = None
    notified_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
