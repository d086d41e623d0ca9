import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Boolean, Integer, JSON
from alqemist.database import Base
from alqemist.utils.clock import utcnow


class AiPersona(Base):
    __tablename__ = "ai_personas"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    avatar = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_default = Column(Boolean, nullable=False, default=False)
    personality = Column(JSON, nullable=False, default=dict)
    knowledge = Column(JSON, nullable=False, default=dict)
    behavior = Column(JSON, nullable=False, default=dict)
    custom_prompts = Column(JSON, nullable=False, default=dict)
    usage_count = Column(Integer, nullable=False, default=0)
    last_used = Column(DateTime, nullable=False, default=utcnow)
    is_public = Column(Boolean, nullable=False, default=False)
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
