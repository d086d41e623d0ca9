"""Reminders, follow-ups and recurring tasks. Rows of one recurring series share series_id."""
import enum
import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, JSON, Index
from alqemist.database import Base
from alqemist.utils.clock import utcnow


class TaskType(str, enum.Enum):
    REMINDER = "reminder"
    FOLLOWUP = "followup"
    RECURRING = "recurring"
    SUGGESTION = "suggestion"


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    SNOOZED = "snoozed"


class RecurrencePattern(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class ScheduledTask(Base):
    __tablename__ = "scheduled_tasks"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    task_type = Column(String(32), nullable=False)
    scheduled_for = Column(DateTime, nullable=False)
    recurrence_pattern = Column(String(32), nullable=True)
    status = Column(String(32), nullable=False, default=TaskStatus.PENDING.value)
    # priority, category, related_thread_id, reminder_type, notification_channels, custom_recurrence
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    series_id = Column(String(36), nullable=True, index=True)
    notified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_scheduled_tasks_user_status", "user_id", "status", "scheduled_for"),
        Index("ix_scheduled_tasks_status_due", "status", "scheduled_for"),
    )
