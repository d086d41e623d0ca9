"""
Process-wide service instances for FastAPI Depends. Each factory is cached so services are built once;
tests swap them with app.dependency_overrides.
"""
from functools import lru_cache

from fastapi import Depends

from alqemist.config import get_settings
from alqemist.core.redis import build_redis_thread_cache, get_redis_client
from alqemist.repositories.thread_repository import ThreadRepository
from alqemist.services.intent_parser import IntentParser, parse_intent
from alqemist.services.llm_providers import ProviderRegistry, build_provider_registry
from alqemist.services.model_catalog import DEFAULT_CATALOG, ModelCatalog
from alqemist.services.notifications import Notifier, build_task_notifier
from alqemist.services.persona_manager import PersonaManager
from alqemist.services.suggestion_engine import ProactiveSuggestionsEngine
from alqemist.services.task_scheduler import TaskScheduler
from alqemist.services.thread_service import ThreadService
from alqemist.services.usage_tracker import UsageTracker


@lru_cache
def get_provider_registry() -> ProviderRegistry:
    return build_provider_registry(get_settings())


@lru_cache
def get_model_catalog() -> ModelCatalog:
    """Catalog restricted to providers that have credentials; models of disabled providers are hidden."""
    return DEFAULT_CATALOG.for_providers(get_provider_registry().configured_names())


@lru_cache
def get_usage_tracker() -> UsageTracker:
    return UsageTracker()


@lru_cache
def get_notifier() -> Notifier:
    return build_task_notifier()


@lru_cache
def get_task_scheduler() -> TaskScheduler:
    return TaskScheduler(get_notifier())


@lru_cache
def get_suggestion_engine() -> ProactiveSuggestionsEngine:
    return ProactiveSuggestionsEngine(get_task_scheduler(), get_model_catalog())


@lru_cache
def get_persona_manager() -> PersonaManager:
    return PersonaManager()


def get_intent_parser() -> IntentParser:
    return parse_intent


async def get_redis_thread_cache():
    """Async dependency: Redis thread cache or None if Redis disabled/down."""
    client = await get_redis_client()
    return build_redis_thread_cache(client) if client else None


def get_thread_service(redis_cache=Depends(get_redis_thread_cache)) -> ThreadService:
    """ThreadService with optional Redis cache (Cache-Aside). DB is source of truth."""
    return ThreadService(redis_cache=redis_cache, repository=ThreadRepository())
