"""Append-only usage ledger for quota enforcement and billing."""
import enum
import uuid
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, JSON, Index, CheckConstraint
from alqemist.database import Base
from alqemist.utils.clock import utcnow


class UsageEventType(str, enum.Enum):
    API_CALL = "api_call"
    TOKEN_USAGE = "token_usage"
    FILE_UPLOAD = "file_upload"
    ATTACHMENT_PROCESSING = "attachment_processing"
    TOOL_EXECUTION = "tool_execution"


class UsageEvent(Base):
    __tablename__ = "usage_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(32), nullable=False, index=True)
    resource = Column(String(255), nullable=False)  # e.g. "chat", "image_analysis"
    quantity = Column(Integer, nullable=False, default=1)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    cost = Column(Integer, nullable=False, default=0)  # cents
    timestamp = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_usage_events_user_timestamp", "user_id", "timestamp"),
        CheckConstraint("quantity >= 0", name="ck_usage_events_quantity_non_negative"),
    )
