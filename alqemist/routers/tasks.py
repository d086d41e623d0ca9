"""
Scheduled tasks:
- GET /api/tasks?type=pending|upcoming|suggestions&days=N
- POST /api/tasks - create (recurring patterns expand into a series)
- PATCH /api/tasks/{id} - complete | snooze | cancel
- GET/PUT /api/tasks/preferences
"""
import logging
from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from alqemist.auth import get_current_user
from alqemist.database import get_db
from alqemist.dependencies import get_suggestion_engine, get_task_scheduler
from alqemist.models.user import User
from alqemist.models.user_activity import ActivityType
from alqemist.schemas.task import TaskAction, TaskCreate, TaskResponse
from alqemist.services.suggestion_engine import ProactiveSuggestionsEngine
from alqemist.services.task_scheduler import InvalidTaskTransition, TaskDraft, TaskScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])

TASK_ACTIONS = ("complete", "snooze", "cancel")


def _task_out(task) -> dict:
    return TaskResponse.model_validate(task).model_dump(mode="json")


@router.get("")
def list_tasks(
    type: str = Query("pending", pattern="^(pending|upcoming|suggestions)$"),
    days: int = Query(7, ge=1, le=365),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    scheduler: TaskScheduler = Depends(get_task_scheduler),
):
    """Pending (due within 24h), upcoming (next N days) or smart suggestions (not stored)."""
    if type == "upcoming":
        return {"tasks": [_task_out(t) for t in scheduler.get_upcoming_tasks(db, user.id, days=days)]}
    if type == "suggestions":
        return {"suggestions": [d.to_dict() for d in scheduler.generate_smart_suggestions(db, user.id)]}
    return {"tasks": [_task_out(t) for t in scheduler.get_pending_tasks(db, user.id)]}


@router.get("/preferences")
def get_preferences(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    scheduler: TaskScheduler = Depends(get_task_scheduler),
):
    return scheduler.get_user_preferences(db, user.id)


@router.put("/preferences")
def update_preferences(
    preferences: dict = Body(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    scheduler: TaskScheduler = Depends(get_task_scheduler),
):
    return {"success": True, "preferences": scheduler.update_user_preferences(db, user.id, preferences)}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_task(
    body: TaskCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    scheduler: TaskScheduler = Depends(get_task_scheduler),
):
    draft = TaskDraft(
        user_id=user.id,
        title=body.title.strip(),
        description=body.description,
        task_type=body.task_type.value,
        scheduled_for=body.scheduled_for,
        recurrence_pattern=body.recurrence_pattern.value if body.recurrence_pattern else None,
        metadata=body.metadata.model_dump(mode="json", exclude_none=True),
    )
    task_id = scheduler.schedule_task(db, draft)
    return {"id": task_id, "success": True}


@router.get("/{task_id}")
def get_task(
    task_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    scheduler: TaskScheduler = Depends(get_task_scheduler),
):
    task = scheduler.get_task(db, task_id, user.id)
    if not task:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return _task_out(task)


@router.patch("/{task_id}")
def update_task(
    task_id: str,
    body: TaskAction,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    scheduler: TaskScheduler = Depends(get_task_scheduler),
    engine: ProactiveSuggestionsEngine = Depends(get_suggestion_engine),
):
    """Apply a lifecycle action. Completed and cancelled tasks are final (409)."""
    if body.action not in TASK_ACTIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid action. Use one of: {', '.join(TASK_ACTIONS)}",
        )
    try:
        if body.action == "complete":
            task = scheduler.complete_task(db, task_id, user.id)
        elif body.action == "snooze":
            task = scheduler.snooze_task(db, task_id, user.id, minutes=body.snooze_minutes)
        else:
            task = scheduler.cancel_task(db, task_id, user.id)
    except InvalidTaskTransition as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")

    if body.action == "complete":
        engine.record_activity(
            db,
            user.id,
            ActivityType.TASK_COMPLETION.value,
            {"task_id": task.id, "category": (task.metadata_ or {}).get("category"), "task_type": task.task_type},
        )
    return {"success": True, "task": _task_out(task)}
