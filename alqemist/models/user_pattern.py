"""Derived behaviour pattern. One row per (user, pattern_type, key); refreshed by the suggestion engine."""
import enum
import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, Float, Integer, JSON, UniqueConstraint
from alqemist.database import Base
from alqemist.utils.clock import utcnow


class PatternType(str, enum.Enum):
    WORKING_HOURS = "working_hours"
    PREFERRED_TOPICS = "preferred_topics"
    COMMUNICATION_STYLE = "communication_style"
    TASK_FREQUENCY = "task_frequency"
    LEARNING_PACE = "learning_pace"


class UserPattern(Base):
    __tablename__ = "user_patterns"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    pattern_type = Column(String(32), nullable=False)
    key = Column(String(255), nullable=False, default="")  # e.g. task category for task_frequency
    frequency = Column(Integer, nullable=False, default=0)
    confidence = Column(Float, nullable=False, default=0.0)
    last_seen = Column(DateTime, nullable=False, default=utcnow)
    data = Column(JSON, nullable=False, default=dict)

    __table_args__ = (UniqueConstraint("user_id", "pattern_type", "key", name="uq_user_patterns_type_key"),)
