"""Chat thread. A user owns many threads; messages belong to one thread."""
import uuid

from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from alqemist.database import Base
from alqemist.utils.clock import utcnow


class Thread(Base):
    __tablename__ = "threads"

    id = Column(String(64), primary_key=True, default=lambda: f"thread_{uuid.uuid4().hex}")
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False, default="New Chat")
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    messages = relationship(
        "Message",
        back_populates="thread",
        order_by="Message.created_at",
        cascade="all, delete-orphan",
        lazy="select",
    )
