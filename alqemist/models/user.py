"""Local mirror of an identity-provider user. The id is the provider's user id (JWT `sub`)."""
from sqlalchemy import Column, String, Text, DateTime, JSON
from alqemist.database import Base
from alqemist.utils.clock import utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(String(255), primary_key=True)
    email = Column(String(255), nullable=False, default="", index=True)
    name = Column(String(255), nullable=False, default="")
    avatar_url = Column(Text, nullable=True)
    preferences = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
