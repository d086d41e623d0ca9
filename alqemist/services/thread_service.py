"""
Thread orchestration: DB as source of truth, Redis as cache (Cache-Aside).
- Read messages: try Redis; on miss load from DB, warm Redis, return.
- Write: DB first, then best-effort Redis append.
- Ownership: every thread lookup is scoped to the requesting user.
"""
import asyncio
import logging

from sqlalchemy.orm import Session

from alqemist.models.thread import Thread
from alqemist.repositories.thread_repository import ThreadRepository, message_to_dict
from alqemist.services.redis_thread_cache import RedisThreadCache

logger = logging.getLogger(__name__)


async def _run(fn):
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, fn)


class ThreadService:
    def __init__(self, redis_cache: RedisThreadCache | None, repository: ThreadRepository | None = None):
        self._cache = redis_cache
        self._repo = repository or ThreadRepository()

    async def list_threads(self, db: Session, user_id: str) -> list[Thread]:
        return await _run(lambda: self._repo.list_threads(db, user_id))

    async def create_thread(self, db: Session, user_id: str, title: str | None, description: str | None) -> Thread:
        return await _run(lambda: self._repo.create_thread(db, user_id, title, description))

    async def get_thread(self, db: Session, thread_id: str, user_id: str) -> Thread | None:
        return await _run(lambda: self._repo.get_thread(db, thread_id, user_id))

    async def get_messages(self, db: Session, thread_id: str) -> list[dict]:
        """All cached (last N) or stored messages of a thread, oldest first. Caller checks ownership."""
        if self._cache:
            cached = await self._cache.get_messages(thread_id)
            if cached is not None:
                return cached
        messages = await _run(lambda: self._repo.get_messages(db, thread_id))
        if self._cache and messages:
            await self._cache.warm(thread_id, messages)
        return messages

    async def get_thread_with_messages(self, db: Session, thread_id: str, user_id: str) -> tuple[Thread, list[dict]] | None:
        thread = await self.get_thread(db, thread_id, user_id)
        if thread is None:
            return None
        return thread, await self.get_messages(db, thread_id)

    async def delete_thread(self, db: Session, thread_id: str, user_id: str) -> bool:
        deleted = await _run(lambda: self._repo.delete_thread(db, thread_id, user_id))
        if deleted and self._cache:
            await self._cache.invalidate(thread_id)
        return deleted

    async def save_message(
        self,
        db: Session,
        thread_id: str,
        user_id: str,
        role: str,
        content: str,
        *,
        model: str | None = None,
        output_tokens: int | None = None,
    ) -> dict:
        msg = await _run(
            lambda: self._repo.save_message(
                db, thread_id, user_id, role, content, model=model, output_tokens=output_tokens
            )
        )
        data = message_to_dict(msg)
        if self._cache:
            await self._cache.append_message(thread_id, data)
        return data
