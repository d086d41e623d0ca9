"""
Proactive suggestions derived from the user's activity, tasks and usage.

refresh_patterns() turns raw activity and completed tasks into user_patterns rows;
generate_suggestions() reads those patterns plus pending tasks and recent api usage
and returns the top 5 unsaved suggestions (priority, then confidence).
"""
import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta

from sqlalchemy import case
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from alqemist.models.proactive_suggestion import ProactiveSuggestion, SuggestionType
from alqemist.models.scheduled_task import ScheduledTask, TaskStatus
from alqemist.models.usage_event import UsageEvent, UsageEventType
from alqemist.models.user_activity import ActivityType, UserActivity
from alqemist.models.user_pattern import PatternType, UserPattern
from alqemist.services.model_catalog import DEFAULT_CATALOG, ModelCatalog, tier_rank
from alqemist.services.task_scheduler import TaskScheduler
from alqemist.utils.clock import utcnow

logger = logging.getLogger(__name__)

PRIORITY_WEIGHT = {"high": 3, "medium": 2, "low": 1}
MAX_SUGGESTIONS = 5

ACTIVITY_WINDOW = timedelta(days=14)
TASK_FREQUENCY_WINDOW = timedelta(days=7)
USAGE_WINDOW = timedelta(days=7)


def _dismiss_action(label: str = "Not now") -> dict:
    return {"label": label, "type": "dismiss", "data": {}}


def _suggestion(
    user_id: str,
    type_: SuggestionType,
    title: str,
    description: str,
    confidence: float,
    priority: str,
    metadata: dict,
    actions: list[dict],
    now: datetime,
    expires_at: datetime | None = None,
) -> ProactiveSuggestion:
    return ProactiveSuggestion(
        user_id=user_id,
        type=type_.value,
        title=title,
        description=description,
        confidence=round(float(confidence), 3),
        priority=priority,
        metadata_=metadata,
        actions=actions,
        created_at=now,
        expires_at=expires_at,
        shown=False,
        dismissed=False,
    )


def sort_suggestions(suggestions: list[ProactiveSuggestion]) -> list[ProactiveSuggestion]:
    # sorted() is stable, so generation order breaks remaining ties
    return sorted(
        suggestions,
        key=lambda s: (-PRIORITY_WEIGHT.get(s.priority, 1), -float(s.confidence or 0)),
    )[:MAX_SUGGESTIONS]


class ProactiveSuggestionsEngine:
    def __init__(self, task_scheduler: TaskScheduler, catalog: ModelCatalog | None = None):
        self.task_scheduler = task_scheduler
        self.catalog = catalog if catalog is not None else DEFAULT_CATALOG

    # ---- activity ----

    def record_activity(
        self, db: Session, user_id: str, activity_type: str, data: dict | None = None, session_id: str | None = None
    ) -> None:
        """Append an activity row. Never raises."""
        try:
            db.add(UserActivity(user_id=user_id, activity_type=activity_type, data=data or {}, session_id=session_id))
            db.commit()
        except Exception:
            logger.exception("Failed to record %s activity for user %s", activity_type, user_id)
            db.rollback()

    def get_recent_activity(self, db: Session, user_id: str, now: datetime, limit: int = 50) -> list[UserActivity]:
        return (
            db.query(UserActivity)
            .filter(UserActivity.user_id == user_id, UserActivity.timestamp >= now - ACTIVITY_WINDOW)
            .order_by(UserActivity.timestamp.desc())
            .limit(limit)
            .all()
        )

    def get_user_patterns(self, db: Session, user_id: str) -> list[UserPattern]:
        return db.query(UserPattern).filter(UserPattern.user_id == user_id).all()

    # ---- pattern derivation ----

    def _upsert_pattern(
        self, db: Session, user_id: str, pattern_type: str, key: str,
        frequency: int, confidence: float, data: dict, now: datetime,
    ) -> UserPattern:
        pattern = (
            db.query(UserPattern)
            .filter(UserPattern.user_id == user_id, UserPattern.pattern_type == pattern_type, UserPattern.key == key)
            .first()
        )
        if pattern is None:
            pattern = UserPattern(user_id=user_id, pattern_type=pattern_type, key=key)
            db.add(pattern)
        pattern.frequency = frequency
        pattern.confidence = round(confidence, 3)
        pattern.data = data
        pattern.last_seen = now
        return pattern

    def refresh_patterns(self, db: Session, user_id: str, now: datetime | None = None) -> list[UserPattern]:
        """Derive working_hours and task_frequency patterns and store them."""
        now = now or utcnow()
        refreshed = []

        activities = (
            db.query(UserActivity)
            .filter(UserActivity.user_id == user_id, UserActivity.timestamp >= now - ACTIVITY_WINDOW)
            .all()
        )
        if activities:
            hours = Counter(a.timestamp.hour for a in activities)
            days = {a.timestamp.date() for a in activities}
            today = [a for a in activities if a.timestamp.date() == now.date()]
            intensive_hours = len({a.timestamp.hour for a in today})
            peak = sorted(h for h, _ in hours.most_common(2))
            refreshed.append(
                self._upsert_pattern(
                    db, user_id, PatternType.WORKING_HOURS.value, "",
                    frequency=len(days),
                    confidence=min(1.0, len(activities) / 50),
                    data={
                        "start_hour": min(hours),
                        "end_hour": max(hours) + 1,
                        "peak_productivity_hours": [f"{h:02d}:00" for h in peak],
                        "intensive_hours": intensive_hours,
                        "work_intensity": min(1.0, intensive_hours / 8),
                    },
                    now=now,
                )
            )

        completed = (
            db.query(ScheduledTask)
            .filter(
                ScheduledTask.user_id == user_id,
                ScheduledTask.status == TaskStatus.COMPLETED.value,
                ScheduledTask.scheduled_for >= now - TASK_FREQUENCY_WINDOW,
            )
            .all()
        )
        by_category: dict[str, list[ScheduledTask]] = defaultdict(list)
        for task in completed:
            by_category[(task.metadata_ or {}).get("category") or "general"].append(task)
        for category, tasks in by_category.items():
            weekday, _ = Counter(t.scheduled_for.weekday() for t in tasks).most_common(1)[0]
            hour, _ = Counter(t.scheduled_for.hour for t in tasks).most_common(1)[0]
            refreshed.append(
                self._upsert_pattern(
                    db, user_id, PatternType.TASK_FREQUENCY.value, category,
                    frequency=len(tasks),
                    confidence=min(1.0, 0.5 + 0.1 * len(tasks)),
                    data={"task_type": category, "day_of_week": weekday, "hour": hour},
                    now=now,
                )
            )

        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        return refreshed

    # ---- generators ----

    def _workflow(self, user_id, patterns, activity, now) -> list[ProactiveSuggestion]:
        out = []
        for p in patterns:
            if p.pattern_type != PatternType.TASK_FREQUENCY.value:
                continue
            if p.frequency > 3 and p.confidence > 0.7:
                task_type = (p.data or {}).get("task_type", p.key)
                out.append(
                    _suggestion(
                        user_id, SuggestionType.WORKFLOW,
                        "Workflow Automation Opportunity",
                        f"You do this task often ({p.frequency}x per week). Maybe we can automate it?",
                        p.confidence, "medium",
                        {"category": "automation", "based_on": "pattern", "action_required": True,
                         "estimated_time_minutes": 15, "tags": ["workflow", "automation", "efficiency"]},
                        [{"label": "View automation options", "type": "workflow",
                          "data": {"pattern_id": p.id, "task_type": task_type}},
                         _dismiss_action()],
                        now, expires_at=now + timedelta(days=7),
                    )
                )

        recent_chats = [a for a in activity if a.activity_type == ActivityType.CHAT.value][:10]
        if len(recent_chats) > 5:
            topics = Counter((a.data or {}).get("topic") for a in recent_chats)
            topics.pop(None, None)
            if topics:
                topic = topics.most_common(1)[0][0]
                out.append(
                    _suggestion(
                        user_id, SuggestionType.WORKFLOW,
                        "Workflow Template Suggestion",
                        f"Based on your conversations about {topic}, I can create a workflow template.",
                        0.6, "low",
                        {"category": "template", "based_on": "conversation", "action_required": False,
                         "estimated_time_minutes": 10, "tags": ["template", "workflow", topic]},
                        [{"label": "Create template", "type": "workflow",
                          "data": {"topic": topic, "conversations": len(recent_chats)}},
                         _dismiss_action("Later")],
                        now,
                    )
                )
        return out

    def _learning(self, user_id, activity, now) -> list[ProactiveSuggestion]:
        questions: Counter = Counter()
        for a in activity:
            if a.activity_type != ActivityType.CHAT.value:
                continue
            data = a.data or {}
            if data.get("topic"):
                questions[data["topic"]] += int(data.get("question_count") or 0)
        out = []
        for topic, count in questions.most_common(2):
            if count <= 2:
                break
            out.append(
                _suggestion(
                    user_id, SuggestionType.LEARNING,
                    f"Learn More About {topic}",
                    f"You asked {count} questions about {topic}. Want a structured learning path?",
                    0.8, "medium",
                    {"category": "skill-development", "based_on": "conversation", "action_required": False,
                     "estimated_time_minutes": 30, "tags": ["learning", "skill", topic]},
                    [{"label": "Start learning path", "type": "workflow",
                      "data": {"topic": topic, "type": "learning-path", "questions": count}},
                     {"label": "Save for later", "type": "task", "data": {"title": f"Learn {topic}", "category": "learning"}},
                     _dismiss_action("Not interested")],
                    now,
                )
            )
        return out

    def _productivity(self, user_id, pending_tasks, patterns, now) -> list[ProactiveSuggestion]:
        out = []
        by_category: dict[str, list[ScheduledTask]] = defaultdict(list)
        for task in pending_tasks:
            by_category[(task.metadata_ or {}).get("category") or "general"].append(task)
        for category, tasks in by_category.items():
            if len(tasks) <= 2:
                continue
            out.append(
                _suggestion(
                    user_id, SuggestionType.PRODUCTIVITY,
                    "Task Batching Opportunity",
                    f"You have {len(tasks)} {category} tasks. Batch them for more efficiency!",
                    0.8, "medium",
                    {"category": "task-management", "based_on": "pattern", "action_required": True,
                     "estimated_time_minutes": len(tasks) * 10, "tags": ["batching", "efficiency", category]},
                    [{"label": "Plan batch session", "type": "task",
                      "data": {"title": f"{category} Batch Session", "tasks": [t.id for t in tasks],
                               "category": "productivity"}},
                     _dismiss_action()],
                    now,
                )
            )

        working = next((p for p in patterns if p.pattern_type == PatternType.WORKING_HOURS.value), None)
        if working and (working.data or {}).get("intensive_hours", 0) > 4:
            out.append(
                _suggestion(
                    user_id, SuggestionType.PRODUCTIVITY,
                    "Break Reminder",
                    "You have been working intensively for a long time. A short break improves your productivity.",
                    0.9, "high",
                    {"category": "wellbeing", "based_on": "usage", "action_required": False,
                     "estimated_time_minutes": 15, "tags": ["break", "wellbeing", "productivity"]},
                    [{"label": "Plan a 15 min break", "type": "task",
                      "data": {"title": "Short Break", "scheduled_for": (now + timedelta(minutes=30)).isoformat(),
                               "category": "wellbeing"}},
                     {"label": "Remind me later", "type": "reminder", "data": {"delay_minutes": 60}},
                     _dismiss_action("I'll take a break soon")],
                    now,
                )
            )
        return out

    def _reminder(self, db, user_id, patterns, now) -> list[ProactiveSuggestion]:
        meeting = next(
            (
                p for p in patterns
                if p.pattern_type == PatternType.TASK_FREQUENCY.value and p.key == "meeting" and p.confidence > 0.6
            ),
            None,
        )
        if meeting is None:
            return []
        data = meeting.data or {}
        next_hour = now + timedelta(hours=1)
        if data.get("day_of_week") != next_hour.weekday() or data.get("hour") != next_hour.hour:
            return []

        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        todays = (
            db.query(ScheduledTask)
            .filter(
                ScheduledTask.user_id == user_id,
                ScheduledTask.scheduled_for >= day_start,
                ScheduledTask.scheduled_for < day_start + timedelta(days=1),
                ScheduledTask.status != TaskStatus.CANCELLED.value,
            )
            .all()
        )
        if any((t.metadata_ or {}).get("category") == "meeting" for t in todays):
            return []

        weekday = next_hour.strftime("%A")
        return [
            _suggestion(
                user_id, SuggestionType.REMINDER,
                "Possible Forgotten Meeting",
                f"You usually have a meeting on {weekday} around {next_hour.hour:02d}:00. Did you miss something?",
                meeting.confidence, "high",
                {"category": "schedule", "based_on": "pattern", "action_required": True,
                 "tags": ["meeting", "schedule", "reminder"]},
                [{"label": "Check calendar", "type": "link", "data": {"url": "/calendar"}},
                 {"label": "Plan meeting now", "type": "task", "data": {"title": f"{weekday} Meeting", "category": "meeting"}},
                 _dismiss_action("No meeting today")],
                now,
            )
        ]

    def _optimization(self, db, user_id, now) -> list[ProactiveSuggestion]:
        events = (
            db.query(UsageEvent)
            .filter(
                UsageEvent.user_id == user_id,
                UsageEvent.type == UsageEventType.API_CALL.value,
                UsageEvent.timestamp >= now - USAGE_WINDOW,
            )
            .all()
        )
        models = [(e.metadata_ or {}).get("model") for e in events]
        models = [m for m in models if m]
        if not models:
            return []
        professional = tier_rank("professional")
        expensive = 0
        for model_id in models:
            model = self.catalog.get(model_id)
            if model is not None and tier_rank(model.tier) >= professional:
                expensive += 1
        share = expensive / len(models)
        if share <= 0.8:
            return []
        return [
            _suggestion(
                user_id, SuggestionType.OPTIMIZATION,
                "AI Model Cost Optimization",
                "You often use expensive models. Cheaper models are good enough for many tasks.",
                0.8, "medium",
                {"category": "cost-optimization", "based_on": "usage", "action_required": False,
                 "estimated_time_minutes": 5, "tags": ["cost", "models", "optimization"],
                 "expensive_model_usage": round(share, 3)},
                [{"label": "View model suggestions", "type": "workflow", "data": {"action": "show-model-recommendations"}},
                 {"label": "Optimize automatically", "type": "workflow",
                  "data": {"action": "enable-auto-model-optimization"}},
                 _dismiss_action("Keep current setup")],
                now,
            )
        ]

    def _insight(self, user_id, patterns, now) -> list[ProactiveSuggestion]:
        working = next((p for p in patterns if p.pattern_type == PatternType.WORKING_HOURS.value), None)
        if working is None:
            return []
        peak = (working.data or {}).get("peak_productivity_hours") or []
        if not peak:
            return []
        window = f"between {peak[0]} and {peak[1]}" if len(peak) > 1 else f"around {peak[0]}"
        return [
            _suggestion(
                user_id, SuggestionType.INSIGHT,
                "Your Productivity Pattern",
                f"You are most productive {window}. Plan important tasks in these hours!",
                working.confidence, "medium",
                {"category": "productivity-analytics", "based_on": "pattern", "action_required": False,
                 "tags": ["productivity", "timing", "insight"]},
                [{"label": "Plan important tasks", "type": "workflow",
                  "data": {"action": "schedule-in-peak-hours", "hours": peak}},
                 {"label": "See more analytics", "type": "link", "data": {"url": "/analytics"}},
                 _dismiss_action("Got it")],
                now,
            )
        ]

    def generate_suggestions(self, db: Session, user_id: str, now: datetime | None = None) -> list[ProactiveSuggestion]:
        """Top 5 unsaved suggestions. Read failures degrade to an empty list."""
        now = now or utcnow()
        try:
            patterns = self.get_user_patterns(db, user_id)
            activity = self.get_recent_activity(db, user_id, now)
            pending = self.task_scheduler.get_pending_tasks(db, user_id, now)

            suggestions = []
            suggestions += self._workflow(user_id, patterns, activity, now)
            suggestions += self._learning(user_id, activity, now)
            suggestions += self._productivity(user_id, pending, patterns, now)
            suggestions += self._reminder(db, user_id, patterns, now)
            suggestions += self._optimization(db, user_id, now)
            suggestions += self._insight(user_id, patterns, now)
        except SQLAlchemyError:
            logger.exception("Failed to generate suggestions for user %s", user_id)
            db.rollback()
            return []
        return sort_suggestions(suggestions)

    # ---- storage ----

    def save_suggestions(self, db: Session, suggestions: list[ProactiveSuggestion]) -> list[ProactiveSuggestion]:
        if not suggestions:
            return []
        try:
            db.add_all(suggestions)
            db.commit()
        except Exception:
            db.rollback()
            raise
        for s in suggestions:
            db.refresh(s)
        return suggestions

    def list_suggestions(
        self, db: Session, user_id: str, limit: int = 5, include_shown: bool = False, now: datetime | None = None
    ) -> list[ProactiveSuggestion]:
        now = now or utcnow()
        priority_rank = case(
            (ProactiveSuggestion.priority == "high", 3),
            (ProactiveSuggestion.priority == "medium", 2),
            else_=1,
        )
        q = db.query(ProactiveSuggestion).filter(
            ProactiveSuggestion.user_id == user_id,
            (ProactiveSuggestion.expires_at.is_(None)) | (ProactiveSuggestion.expires_at > now),
        )
        if not include_shown:
            q = q.filter(ProactiveSuggestion.shown.is_(False), ProactiveSuggestion.dismissed.is_(False))
        return (
            q.order_by(priority_rank.desc(), ProactiveSuggestion.confidence.desc(), ProactiveSuggestion.created_at.desc())
            .limit(limit)
            .all()
        )

    # ---- interactions ----

    def _update(self, db: Session, suggestion_id: str, user_id: str, interaction: str, **fields) -> bool:
        suggestion = (
            db.query(ProactiveSuggestion)
            .filter(ProactiveSuggestion.id == suggestion_id, ProactiveSuggestion.user_id == user_id)
            .first()
        )
        if suggestion is None:
            return False
        for name, value in fields.items():
            setattr(suggestion, name, value)
        suggestion.interacted_at = utcnow()
        db.commit()
        logger.info("User %s %s suggestion %s", user_id, interaction, suggestion_id)
        return True

    def mark_shown(self, db: Session, suggestion_id: str, user_id: str) -> bool:
        return self._update(db, suggestion_id, user_id, "viewed", shown=True)

    def dismiss(self, db: Session, suggestion_id: str, user_id: str) -> bool:
        return self._update(db, suggestion_id, user_id, "dismissed", dismissed=True)

    def interact(self, db: Session, suggestion_id: str, user_id: str) -> bool:
        return self._update(db, suggestion_id, user_id, "clicked")

    def complete(self, db: Session, suggestion_id: str, user_id: str) -> bool:
        return self._update(db, suggestion_id, user_id, "completed", dismissed=True)
