"""Proactive suggestion shown to the user. Mutated only to flip shown/dismissed or on interaction."""
import enum
import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Float, Boolean, JSON, Index
from alqemist.database import Base
from alqemist.utils.clock import utcnow


class SuggestionType(str, enum.Enum):
    WORKFLOW = "workflow"
    LEARNING = "learning"
    PRODUCTIVITY = "productivity"
    REMINDER = "reminder"
    OPTIMIZATION = "optimization"
    INSIGHT = "insight"


class ProactiveSuggestion(Base):
    __tablename__ = "proactive_suggestions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(32), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    confidence = Column(Float, nullable=False, default=0.5)
    priority = Column(String(16), nullable=False, default="medium")
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    actions = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=True)
    shown = Column(Boolean, nullable=False, default=False)
    dismissed = Column(Boolean, nullable=False, default=False)
    interacted_at = Column(DateTime, nullable=True)

    __table_args__ = (Index("ix_proactive_suggestions_user_state", "user_id", "shown", "dismissed"),)
