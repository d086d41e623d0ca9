"""
Delivery of due-task notifications.
Every notification is logged; when notification_webhook_url is set it is also POSTed there as JSON.
Delivery failures raise so the sweep can leave the task un-notified and retry it next round.
"""
import logging
from typing import Protocol

import httpx

from alqemist.config import get_settings
from alqemist.models.scheduled_task import ScheduledTask

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send(self, task: ScheduledTask) -> None: ...


def build_notification_payload(task: ScheduledTask) -> dict:
    metadata = task.metadata_ or {}
    return {
        "task_id": task.id,
        "user_id": task.user_id,
        "title": task.title,
        "message": task.description or task.title,
        "scheduled_for": task.scheduled_for.isoformat() if task.scheduled_for else None,
        "channels": metadata.get("notification_channels") or ["push"],
        "priority": metadata.get("priority", "medium"),
        "task_type": task.task_type,
    }


class TaskNotifier:
    def __init__(self, webhook_url: str = "", timeout: float = 5.0):
        self.webhook_url = (webhook_url or "").strip()
        self.timeout = timeout

    def send(self, task: ScheduledTask) -> None:
        payload = build_notification_payload(task)
        logger.info(
            "Task notification: task=%s user=%s title=%r channels=%s",
            task.id, task.user_id, task.title, ",".join(payload["channels"]),
        )
        if not self.webhook_url:
            return
        res = httpx.post(self.webhook_url, json=payload, timeout=self.timeout)
        if res.status_code >= 400:
            raise RuntimeError(f"Notification webhook returned {res.status_code} for task {task.id}")


def build_task_notifier() -> TaskNotifier:
    settings = get_settings()
    return TaskNotifier(settings.notification_webhook_url, settings.notification_webhook_timeout_seconds)
