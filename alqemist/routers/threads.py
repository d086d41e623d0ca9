"""
Chat threads (history is DB + optional Redis cache):
- GET /api/threads, POST /api/threads
- GET /api/threads/{id} - thread and its messages (ownership validated)
- DELETE /api/threads/{id}
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from alqemist.auth import get_current_user
from alqemist.database import get_db
from alqemist.dependencies import get_thread_service
from alqemist.models.user import User
from alqemist.schemas.thread import MessageOut, ThreadCreate, ThreadDetailResponse, ThreadResponse
from alqemist.services.thread_service import ThreadService

router = APIRouter(prefix="/api/threads", tags=["threads"])


@router.get("", response_model=list[ThreadResponse])
async def list_threads(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    thread_service: ThreadService = Depends(get_thread_service),
):
    return await thread_service.list_threads(db, user.id)


@router.post("", response_model=ThreadResponse, status_code=status.HTTP_201_CREATED)
async def create_thread(
    body: ThreadCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    thread_service: ThreadService = Depends(get_thread_service),
):
    return await thread_service.create_thread(db, user.id, body.title, body.description)


@router.get("/{thread_id}", response_model=ThreadDetailResponse)
async def get_thread(
    thread_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    thread_service: ThreadService = Depends(get_thread_service),
):
    found = await thread_service.get_thread_with_messages(db, thread_id, user.id)
    if found is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found")
    thread, messages = found
    return ThreadDetailResponse(
        thread=ThreadResponse.model_validate(thread),
        messages=[MessageOut(**m) for m in messages],
    )


@router.delete("/{thread_id}")
async def delete_thread(
    thread_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    thread_service: ThreadService = Depends(get_thread_service),
):
    if not await thread_service.delete_thread(db, thread_id, user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found")
    return {"success": True}
