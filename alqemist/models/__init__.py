from alqemist.models.user import User
from alqemist.models.thread import Thread
from alqemist.models.message import Message
from alqemist.models.usage_event import UsageEvent, UsageEventType
from alqemist.models.subscription import Subscription, SubscriptionStatus
from alqemist.models.scheduled_task import ScheduledTask, TaskType, TaskStatus, RecurrencePattern
from alqemist.models.proactive_suggestion import ProactiveSuggestion, SuggestionType
from alqemist.models.ai_persona import AiPersona
from alqemist.models.user_activity import UserActivity, ActivityType
from alqemist.models.user_pattern import UserPattern, PatternType
from alqemist.models.user_profile import UserProfile

__all__ = [
    "User", "Thread", "Message", "UsageEvent", "UsageEventType", "Subscription", "SubscriptionStatus",
    "ScheduledTask", "TaskType", "TaskStatus", "RecurrencePattern", "ProactiveSuggestion", "SuggestionType",
    "AiPersona", "UserActivity", "ActivityType", "UserPattern", "PatternType", "UserProfile",
]
