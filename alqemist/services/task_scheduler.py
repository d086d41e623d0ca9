"""
Reminders, follow-ups and recurring tasks.
- A recurring task is expanded into its whole series at creation, in one transaction.
- Completed and cancelled are terminal; snoozed tasks can still be completed, cancelled or snoozed again.
- process_due_tasks notifies each due task once (notified_at) and creates high-priority follow-ups.
"""
import copy
import logging
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from alqemist.models.scheduled_task import ScheduledTask, TaskStatus, TaskType
from alqemist.models.user_pattern import PatternType, UserPattern
from alqemist.models.user_profile import UserProfile
from alqemist.services.notifications import Notifier
from alqemist.utils.clock import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_MAX_OCCURRENCES = 10

RECURRENCE_INTERVALS = {
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
    "monthly": timedelta(days=30),
}
UNIT_DELTAS = {
    "minutes": timedelta(minutes=1),
    "hours": timedelta(hours=1),
    "days": timedelta(days=1),
    "weeks": timedelta(weeks=1),
    "months": timedelta(days=30),
}

TERMINAL_STATUSES = (TaskStatus.COMPLETED.value, TaskStatus.CANCELLED.value)

DEFAULT_PREFERENCES = {
    "default_notification_time": "09:00",
    "timezone": "Europe/Amsterdam",
    "working_hours": {"start": "09:00", "end": "17:00", "workdays": [1, 2, 3, 4, 5]},
    "quiet_hours": {"start": "22:00", "end": "08:00"},
    "reminder_settings": {
        "default_advance_time": 15,
        "max_reminders_per_day": 10,
        "auto_snooze_time": 60,
    },
}


class InvalidTaskTransition(Exception):
    def __init__(self, task_id: str, status: str, action: str):
        super().__init__(f"Cannot {action} task {task_id}: task is {status}")
        self.task_id = task_id
        self.status = status
        self.action = action


@dataclass
class TaskDraft:
    """A task not yet stored. Returned by generate_smart_suggestions, accepted by schedule_task."""

    user_id: str
    title: str
    task_type: str
    scheduled_for: datetime
    description: str | None = None
    recurrence_pattern: str | None = None
    status: str = TaskStatus.PENDING.value
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "task_type": self.task_type,
            "scheduled_for": self.scheduled_for.isoformat(),
            "recurrence_pattern": self.recurrence_pattern,
            "status": self.status,
            "metadata": self.metadata,
        }


def recurrence_interval(pattern: str, metadata: dict | None) -> timedelta:
    if pattern == "custom":
        custom = (metadata or {}).get("custom_recurrence") or {}
        unit = UNIT_DELTAS.get(custom.get("unit"))
        interval = custom.get("interval")
        if unit is not None and isinstance(interval, int) and interval > 0:
            return unit * interval
        return timedelta(days=1)
    return RECURRENCE_INTERVALS.get(pattern, timedelta(days=1))


def _parse_end_date(value) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    try:
        return to_naive_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        logger.warning("Ignoring unparseable custom_recurrence.end_date: %r", value)
        return None


def expand_occurrences(start: datetime, pattern: str, metadata: dict | None) -> list[datetime]:
    """Due times of a recurring series, original first. At most max_occurrences, none after end_date."""
    custom = (metadata or {}).get("custom_recurrence") or {}
    max_occurrences = custom.get("max_occurrences") or DEFAULT_MAX_OCCURRENCES
    end_date = _parse_end_date(custom.get("end_date"))
    interval = recurrence_interval(pattern, metadata)

    times = [start]
    for i in range(1, max_occurrences):
        due = start + interval * i
        if end_date is not None and due > end_date:
            break
        times.append(due)
    return times


class TaskScheduler:
    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    # ---- create ----

    def schedule_task(self, db: Session, task: TaskDraft) -> str:
        """Store a task (and its recurring siblings). Returns the id of the first row. Raises on failure."""
        scheduled_for = to_naive_utc(task.scheduled_for)
        metadata = task.metadata or {}
        if task.recurrence_pattern:
            due_times = expand_occurrences(scheduled_for, task.recurrence_pattern, metadata)
            series_id = str(uuid.uuid4())
        else:
            due_times = [scheduled_for]
            series_id = None

        rows = []
        for i, due in enumerate(due_times):
            rows.append(
                ScheduledTask(
                    user_id=task.user_id,
                    title=task.title,
                    description=task.description,
                    task_type=task.task_type,
                    scheduled_for=due,
                    recurrence_pattern=task.recurrence_pattern,
                    status=task.status if i == 0 else TaskStatus.PENDING.value,
                    metadata_=copy.deepcopy(metadata),
                    series_id=series_id,
                )
            )
        try:
            db.add_all(rows)
            db.commit()
        except Exception:
            db.rollback()
            raise
        if len(rows) > 1:
            logger.info("Scheduled recurring series %s (%d tasks) for user %s", series_id, len(rows), task.user_id)
        return rows[0].id

    # ---- read ----

    def get_task(self, db: Session, task_id: str, user_id: str) -> ScheduledTask | None:
        return (
            db.query(ScheduledTask)
            .filter(ScheduledTask.id == task_id, ScheduledTask.user_id == user_id)
            .first()
        )

    def get_pending_tasks(self, db: Session, user_id: str, now: datetime | None = None) -> list[ScheduledTask]:
        now = now or utcnow()
        try:
            return (
                db.query(ScheduledTask)
                .filter(
                    ScheduledTask.user_id == user_id,
                    ScheduledTask.status == TaskStatus.PENDING.value,
                    ScheduledTask.scheduled_for <= now + timedelta(hours=24),
                )
                .order_by(ScheduledTask.scheduled_for.asc())
                .all()
            )
        except SQLAlchemyError:
            logger.exception("Failed to get pending tasks for user %s", user_id)
            db.rollback()
            return []

    def get_upcoming_tasks(
        self, db: Session, user_id: str, days: int = 7, now: datetime | None = None
    ) -> list[ScheduledTask]:
        now = now or utcnow()
        try:
            return (
                db.query(ScheduledTask)
                .filter(
                    ScheduledTask.user_id == user_id,
                    ScheduledTask.status.in_([TaskStatus.PENDING.value, TaskStatus.SNOOZED.value]),
                    ScheduledTask.scheduled_for >= now,
                    ScheduledTask.scheduled_for <= now + timedelta(days=days),
                )
                .order_by(ScheduledTask.scheduled_for.asc())
                .limit(20)
                .all()
            )
        except SQLAlchemyError:
            logger.exception("Failed to get upcoming tasks for user %s", user_id)
            db.rollback()
            return []

    def get_overdue_tasks(self, db: Session, user_id: str, now: datetime | None = None) -> list[ScheduledTask]:
        now = now or utcnow()
        try:
            return (
                db.query(ScheduledTask)
                .filter(
                    ScheduledTask.user_id == user_id,
                    ScheduledTask.status == TaskStatus.PENDING.value,
                    ScheduledTask.scheduled_for < now - timedelta(hours=1),
                )
                .order_by(ScheduledTask.scheduled_for.desc())
                .limit(5)
                .all()
            )
        except SQLAlchemyError:
            logger.exception("Failed to get overdue tasks for user %s", user_id)
            db.rollback()
            return []

    # ---- transitions ----

    def _transition(self, db: Session, task_id: str, user_id: str, action: str) -> ScheduledTask | None:
        task = self.get_task(db, task_id, user_id)
        if task is None:
            return None
        if task.status in TERMINAL_STATUSES:
            raise InvalidTaskTransition(task_id, task.status, action)
        return task

    def complete_task(
        self, db: Session, task_id: str, user_id: str, now: datetime | None = None
    ) -> ScheduledTask | None:
        task = self._transition(db, task_id, user_id, "complete")
        if task is None:
            return None
        now = now or utcnow()
        task.status = TaskStatus.COMPLETED.value
        task.updated_at = now
        db.commit()

        if (task.metadata_ or {}).get("category") == "meeting":
            self.schedule_task(
                db,
                TaskDraft(
                    user_id=user_id,
                    title="Meeting Follow-up",
                    description="Send follow-up actions or a summary to the participants",
                    task_type=TaskType.SUGGESTION.value,
                    scheduled_for=now + timedelta(minutes=30),
                    metadata={
                        "priority": "medium",
                        "category": "followup",
                        "reminder_type": "custom",
                        "notification_channels": ["push"],
                    },
                ),
            )
        return task

    def snooze_task(
        self, db: Session, task_id: str, user_id: str, minutes: int = 60, now: datetime | None = None
    ) -> ScheduledTask | None:
        task = self._transition(db, task_id, user_id, "snooze")
        if task is None:
            return None
        now = now or utcnow()
        task.scheduled_for = now + timedelta(minutes=minutes)
        task.status = TaskStatus.SNOOZED.value
        task.notified_at = None
        task.updated_at = now
        db.commit()
        return task

    def cancel_task(self, db: Session, task_id: str, user_id: str) -> ScheduledTask | None:
        task = self._transition(db, task_id, user_id, "cancel")
        if task is None:
            return None
        task.status = TaskStatus.CANCELLED.value
        task.updated_at = utcnow()
        db.commit()
        return task

    # ---- due-task sweep ----

    def process_due_tasks(self, db: Session, now: datetime | None = None) -> int:
        """Notify every due, not yet notified task. Returns the number processed."""
        now = now or utcnow()

        reverted = (
            db.query(ScheduledTask)
            .filter(ScheduledTask.status == TaskStatus.SNOOZED.value, ScheduledTask.scheduled_for <= now)
            .update({ScheduledTask.status: TaskStatus.PENDING.value}, synchronize_session=False)
        )
        db.commit()
        if reverted:
            logger.info("Reverted %d snoozed tasks to pending", reverted)

        due_ids = [
            row[0]
            for row in db.query(ScheduledTask.id)
            .filter(
                ScheduledTask.status == TaskStatus.PENDING.value,
                ScheduledTask.scheduled_for <= now,
                ScheduledTask.notified_at.is_(None),
            )
            .order_by(ScheduledTask.scheduled_for.asc())
            .all()
        ]

        processed = 0
        for task_id in due_ids:
            try:
                task = db.query(ScheduledTask).filter(ScheduledTask.id == task_id).first()
                if task is None:
                    continue
                self._process_task(db, task, now)
                processed += 1
            except Exception:
                logger.exception("Failed to process task %s", task_id)
                db.rollback()
        return processed

    def _process_task(self, db: Session, task: ScheduledTask, now: datetime) -> None:
        self.notifier.send(task)
        task.notified_at = now
        followup = None
        metadata = task.metadata_ or {}
        if not task.recurrence_pattern and metadata.get("priority") == "high":
            followup = ScheduledTask(
                user_id=task.user_id,
                title=f"Follow-up: {task.title}",
                description="Check if this important task was completed",
                task_type=TaskType.FOLLOWUP.value,
                scheduled_for=now + timedelta(hours=4),
                status=TaskStatus.PENDING.value,
                metadata_={
                    "priority": "medium",
                    "category": "followup",
                    "related_thread_id": metadata.get("related_thread_id"),
                    "reminder_type": "task",
                    "notification_channels": ["push"],
                },
            )
            db.add(followup)
        db.commit()

    # ---- smart suggestions ----

    def common_meeting_times(self, db: Session, user_id: str, now: datetime | None = None) -> list[str]:
        """HH:MM of the user's meeting tasks in the last 30 days, most common first."""
        now = now or utcnow()
        tasks = (
            db.query(ScheduledTask)
            .filter(ScheduledTask.user_id == user_id, ScheduledTask.scheduled_for >= now - timedelta(days=30))
            .all()
        )
        counts = Counter(
            t.scheduled_for.strftime("%H:%M")
            for t in tasks
            if (t.metadata_ or {}).get("category") == "meeting"
            or (t.metadata_ or {}).get("reminder_type") == "meeting"
        )
        return [hhmm for hhmm, _ in counts.most_common()]

    def work_intensity(self, db: Session, user_id: str) -> float:
        pattern = (
            db.query(UserPattern)
            .filter(UserPattern.user_id == user_id, UserPattern.pattern_type == PatternType.WORKING_HOURS.value)
            .first()
        )
        if pattern is None:
            return 0.0
        return float((pattern.data or {}).get("work_intensity") or 0.0)

    def generate_smart_suggestions(self, db: Session, user_id: str, now: datetime | None = None) -> list[TaskDraft]:
        """Unsaved task candidates derived from overdue tasks, meeting habits and work intensity."""
        now = now or utcnow()
        suggestions: list[TaskDraft] = []
        try:
            for task in self.get_overdue_tasks(db, user_id, now):
                metadata = task.metadata_ or {}
                if metadata.get("priority") != "high":
                    continue
                suggestions.append(
                    TaskDraft(
                        user_id=user_id,
                        title=f"Follow-up: {task.title}",
                        description="This important task has not been completed yet.",
                        task_type=TaskType.FOLLOWUP.value,
                        scheduled_for=now + timedelta(hours=2),
                        metadata={
                            "priority": "medium",
                            "category": "followup",
                            "related_thread_id": metadata.get("related_thread_id"),
                            "reminder_type": "task",
                            "notification_channels": ["push"],
                        },
                    )
                )

            meeting_times = self.common_meeting_times(db, user_id, now)
            if meeting_times:
                hour, minute = (int(p) for p in meeting_times[0].split(":"))
                next_meeting = (now + timedelta(days=1)).replace(hour=hour, minute=minute, second=0, microsecond=0)
                suggestions.append(
                    TaskDraft(
                        user_id=user_id,
                        title="Recurring Meeting Reminder",
                        description="Based on your usual meeting times",
                        task_type=TaskType.SUGGESTION.value,
                        scheduled_for=next_meeting - timedelta(minutes=15),
                        metadata={
                            "priority": "medium",
                            "category": "meeting",
                            "reminder_type": "meeting",
                            "notification_channels": ["push", "email"],
                        },
                    )
                )

            if self.work_intensity(db, user_id) > 0.8:
                suggestions.append(
                    TaskDraft(
                        user_id=user_id,
                        title="Take a Break",
                        description="You are working hard today! Time for a short break.",
                        task_type=TaskType.SUGGESTION.value,
                        scheduled_for=now + timedelta(minutes=30),
                        metadata={
                            "priority": "low",
                            "category": "wellbeing",
                            "reminder_type": "custom",
                            "notification_channels": ["push"],
                        },
                    )
                )
        except SQLAlchemyError:
            logger.exception("Failed to generate smart suggestions for user %s", user_id)
            db.rollback()
            return []
        return suggestions

    # ---- preferences ----

    def get_user_preferences(self, db: Session, user_id: str) -> dict:
        try:
            profile = db.query(UserProfile).filter(UserProfile.user_id == user_id).first()
        except SQLAlchemyError:
            logger.exception("Failed to read preferences for user %s", user_id)
            db.rollback()
            profile = None
        stored = ((profile.profile_data if profile else None) or {}).get("task_preferences")
        prefs = copy.deepcopy(DEFAULT_PREFERENCES)
        if stored:
            prefs.update(stored)
        prefs["user_id"] = user_id
        return prefs

    def update_user_preferences(self, db: Session, user_id: str, preferences: dict) -> dict:
        """Shallow-merge preferences into profile_data.task_preferences. Raises on failure."""
        profile = db.query(UserProfile).filter(UserProfile.user_id == user_id).first()
        if profile is None:
            profile = UserProfile(user_id=user_id, profile_data={})
            db.add(profile)
        data = dict(profile.profile_data or {})
        merged = dict(data.get("task_preferences") or {})
        merged.update({k: v for k, v in preferences.items() if k != "user_id"})
        data["task_preferences"] = merged
        # reassign so the JSON column is marked dirty
        profile.profile_data = data
        profile.updated_at = utcnow()
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        return self.get_user_preferences(db, user_id)
