"""Activity log (chat, task completion, ...) used to derive user patterns."""
import enum
import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, Index
from alqemist.database import Base
from alqemist.utils.clock import utcnow


class ActivityType(str, enum.Enum):
    CHAT = "chat"
    TASK_COMPLETION = "task_completion"
    LOGIN = "login"
    FILE_UPLOAD = "file_upload"
    MODEL_SWITCH = "model_switch"
    MEMORY_ACCESS = "memory_access"


class UserActivity(Base):
    __tablename__ = "user_activity"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    activity_type = Column(String(32), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    session_id = Column(String(255), nullable=True)
    timestamp = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("ix_user_activity_user_timestamp", "user_id", "timestamp"),)
