from sqlalchemy import Column, String, DateTime, ForeignKey, JSON
from alqemist.database import Base
from alqemist.utils.clock import utcnow


class UserProfile(Base):
    __tablename__ = "user_profiles"

    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    profile_data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
