"""Message in a chat thread."""
import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Integer, JSON, Index
from sqlalchemy.orm import relationship
from alqemist.database import Base
from alqemist.utils.clock import utcnow


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    thread_id = Column(
        String(64),
        ForeignKey("threads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(16), nullable=False)  # "user" | "assistant"
    content = Column(Text, nullable=False)
    model = Column(String(128), nullable=True)  # model that produced an assistant message
    attachments = Column(JSON, nullable=True)
    input_tokens = Column(Integer, nullable=True)
    output_tokens = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    thread = relationship("Thread", back_populates="messages")

    __table_args__ = (Index("ix_messages_thread_created", "thread_id", "created_at"),)
