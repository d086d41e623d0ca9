"""
Thread + Message persistence. DB is the source of truth.
All operations are sync (used from sync endpoints or run_in_executor from async).
Ownership: thread.user_id == current user; every lookup filters on it.
"""
from sqlalchemy import desc
from sqlalchemy.orm import Session

from alqemist.models.message import Message
from alqemist.models.thread import Thread
from alqemist.utils.clock import utcnow


def message_to_dict(m: Message) -> dict:
    return {
        "id": m.id,
        "role": m.role,
        "content": m.content,
        "model": m.model,
        "created_at": m.created_at.isoformat() if m.created_at else None,
    }


def list_threads(db: Session, user_id: str) -> list[Thread]:
    return (
        db.query(Thread)
        .filter(Thread.user_id == user_id)
        .order_by(desc(Thread.updated_at))
        .all()
    )


def get_thread(db: Session, thread_id: str, user_id: str) -> Thread | None:
    return db.query(Thread).filter(Thread.id == thread_id, Thread.user_id == user_id).first()


def create_thread(db: Session, user_id: str, title: str | None = None, description: str | None = None) -> Thread:
    thread = Thread(user_id=user_id, title=(title or "").strip() or "New Chat", description=description)
    db.add(thread)
    db.commit()
    db.refresh(thread)
    return thread


def delete_thread(db: Session, thread_id: str, user_id: str) -> bool:
    thread = get_thread(db, thread_id, user_id)
    if thread is None:
        return False
    db.delete(thread)
    db.commit()
    return True


def save_message(
    db: Session,
    thread_id: str,
    user_id: str,
    role: str,
    content: str,
    *,
    model: str | None = None,
    input_tokens: int | None = None,
    output_tokens: int | None = None,
) -> Message:
    """Persist one message and bump the thread's updated_at."""
    msg = Message(
        thread_id=thread_id,
        user_id=user_id,
        role=role,
        content=content,
        model=model,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
    )
    db.add(msg)
    db.query(Thread).filter(Thread.id == thread_id).update({Thread.updated_at: utcnow()}, synchronize_session=False)
    db.commit()
    db.refresh(msg)
    return msg


def get_messages(db: Session, thread_id: str, limit: int | None = None) -> list[dict]:
    """Messages of a thread, oldest first. With limit: the last `limit` messages."""
    if limit is None:
        rows = db.query(Message).filter(Message.thread_id == thread_id).order_by(Message.created_at).all()
    else:
        rows = (
            db.query(Message)
            .filter(Message.thread_id == thread_id)
            .order_by(desc(Message.created_at))
            .limit(limit)
            .all()
        )
        rows = list(reversed(rows))
    return [message_to_dict(r) for r in rows]


class ThreadRepository:
    """Thin wrapper for dependency injection; delegates to module functions."""

    @staticmethod
    def list_threads(db: Session, user_id: str) -> list[Thread]:
        return list_threads(db, user_id)

    @staticmethod
    def get_thread(db: Session, thread_id: str, user_id: str) -> Thread | None:
        return get_thread(db, thread_id, user_id)

    @staticmethod
    def create_thread(db: Session, user_id: str, title: str | None = None, description: str | None = None) -> Thread:
        return create_thread(db, user_id, title, description)

    @staticmethod
    def delete_thread(db: Session, thread_id: str, user_id: str) -> bool:
        return delete_thread(db, thread_id, user_id)

    @staticmethod
    def save_message(db: Session, thread_id: str, user_id: str, role: str, content: str, **kwargs) -> Message:
        return save_message(db, thread_id, user_id, role, content, **kwargs)

    @staticmethod
    def get_messages(db: Session, thread_id: str, limit: int | None = None) -> list[dict]:
        return get_messages(db, thread_id, limit)
