"""Billing subscription. The active row decides the user's quota tier and model access."""
import enum
import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey
from alqemist.database import Base
from alqemist.utils.clock import utcnow


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    PAST_DUE = "past_due"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    external_subscription_id = Column(String(255), unique=True, nullable=True)
    tier = Column(String(32), nullable=False, default="starter")
    status = Column(String(32), nullable=False, default=SubscriptionStatus.ACTIVE.value)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
