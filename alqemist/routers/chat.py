"""
Chat endpoints:
- POST /api/chat - streamed reply (SSE) from the selected model, with fallback on provider failure
- POST /api/chat/recommend - which model would be used, its fallbacks and estimated cost
- GET /api/models - models available to the user's tier
"""
import logging
from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from alqemist.auth import get_current_user
from alqemist.config import get_settings
from alqemist.database import get_db, SessionLocal
from alqemist.dependencies import (
    get_intent_parser,
    get_model_catalog,
    get_persona_manager,
    get_provider_registry,
    get_suggestion_engine,
    get_task_scheduler,
    get_thread_service,
    get_usage_tracker,
)
from alqemist.models.scheduled_task import TaskType
from alqemist.models.usage_event import UsageEventType
from alqemist.models.user import User
from alqemist.models.user_activity import ActivityType
from alqemist.schemas.chat import ChatRequest, RecommendRequest
from alqemist.services.ai_stream_service import stream_chat_response
from alqemist.services.intent_parser import IntentParser, count_questions, detect_topic
from alqemist.services.llm_providers import ProviderRegistry
from alqemist.services.model_catalog import ModelCatalog, ModelInfo, tier_rank
from alqemist.services.model_optimizer import ModelOptimizer, ModelRecommendation, NoCompatibleModelError
from alqemist.services.persona_manager import PersonaManager
from alqemist.services.suggestion_engine import ProactiveSuggestionsEngine
from alqemist.services.task_scheduler import TaskDraft, TaskScheduler
from alqemist.services.thread_service import ThreadService
from alqemist.services.usage_tracker import NewUsageEvent, UsageTracker, calculate_usage_cost

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])


def _estimate_tokens(text: str) -> int:
    return (len(text) + 3) // 4


def _quota_denied(reason: str | None, reset_time) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "error": "Usage limit exceeded",
            "message": reason,
            "resetTime": reset_time.isoformat() + "Z" if reset_time else None,
        },
    )


def _build_optimizer(catalog: ModelCatalog, tier: str) -> ModelOptimizer:
    settings = get_settings()
    return ModelOptimizer(
        catalog=catalog,
        tier=tier,
        strategy=settings.optimization_strategy,
        fallback_enabled=settings.model_fallback_enabled,
    )


def _resolve_requested_model(catalog: ModelCatalog, model_id: str | None, tier: str) -> ModelInfo | None:
    """Explicitly requested model if it exists, is enabled and the tier allows it."""
    if not model_id:
        return None
    info = catalog.get(model_id)
    if info is None or info.deprecated:
        logger.info("Requested model %s is unknown or disabled; selecting automatically", model_id)
        return None
    if tier_rank(info.tier) > tier_rank(tier):
        logger.info("Requested model %s needs tier %s (user has %s); selecting automatically", model_id, info.tier, tier)
        return None
    return info


def _recommend(
    optimizer: ModelOptimizer,
    requested: ModelInfo | None,
    input_text: str,
    has_attachments: bool,
    expected_output_length: str,
    strategy: str | None,
) -> ModelRecommendation:
    try:
        if requested is not None:
            return optimizer.recommend_with_primary(requested, input_text, has_attachments, expected_output_length)
        return optimizer.recommend_for_input(
            input_text, has_attachments, expected_output_length, strategy=strategy
        )
    except NoCompatibleModelError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(e), "required_features": e.required_features},
        ) from e


@router.get("/models")
def list_models(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    catalog: ModelCatalog = Depends(get_model_catalog),
    tracker: UsageTracker = Depends(get_usage_tracker),
):
    tier = tracker.get_user_tier(db, user.id).id
    return {
        "tier": tier,
        "default_model": get_settings().default_model,
        "models": [m.to_dict() for m in catalog.models_for_tier(tier)],
    }


@router.post("/chat/recommend")
def recommend_model(
    body: RecommendRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    catalog: ModelCatalog = Depends(get_model_catalog),
    tracker: UsageTracker = Depends(get_usage_tracker),
):
    tier = tracker.get_user_tier(db, user.id).id
    optimizer = _build_optimizer(catalog, tier)
    recommendation = _recommend(
        optimizer, None, body.input_text, body.has_attachments, body.expected_output_length, body.strategy
    )
    return recommendation.to_dict()


@router.post("/chat")
async def chat(
    body: ChatRequest,
    x_model: str | None = Header(None, alias="X-Model"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    catalog: ModelCatalog = Depends(get_model_catalog),
    registry: ProviderRegistry = Depends(get_provider_registry),
    tracker: UsageTracker = Depends(get_usage_tracker),
    personas: PersonaManager = Depends(get_persona_manager),
    scheduler: TaskScheduler = Depends(get_task_scheduler),
    engine: ProactiveSuggestionsEngine = Depends(get_suggestion_engine),
    parse_intent: IntentParser = Depends(get_intent_parser),
    thread_service: ThreadService = Depends(get_thread_service),
):
    """
    Stream a reply as Server-Sent Events. Quota is checked first (429 with resetTime).
    Model: body.model, else the X-Model header, else chosen by the optimizer from the last user message.
    After the stream: assistant message saved, usage and activity recorded, reminder intent scheduled.
    """
    input_text = next((m.content for m in reversed(body.messages) if m.role == "user"), "")
    input_tokens = _estimate_tokens("".join(m.content for m in body.messages))

    decision = tracker.can_make_request(db, UsageEventType.API_CALL.value, 1, user.id)
    if decision.allowed:
        decision = tracker.can_make_request(db, UsageEventType.TOKEN_USAGE.value, input_tokens, user.id)
    if not decision.allowed:
        logger.info("Chat denied for user %s: %s", user.id, decision.reason)
        return _quota_denied(decision.reason, decision.reset_time)

    tier = tracker.get_user_tier(db, user.id).id
    optimizer = _build_optimizer(catalog, tier)
    requested = _resolve_requested_model(catalog, body.model or x_model, tier)
    recommendation = _recommend(
        optimizer, requested, input_text, body.has_attachments, body.expected_output_length, body.strategy
    )

    if body.thread_id:
        thread = await thread_service.get_thread(db, body.thread_id, user.id)
        if thread is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found")
    else:
        thread = await thread_service.create_thread(db, user.id, input_text[:50], None)
    thread_id = thread.id

    # Persist user message before streaming so history is stored even if stream fails later
    if input_text:
        try:
            await thread_service.save_message(db, thread_id, user.id, "user", input_text)
        except Exception as e:
            logger.warning("save user message failed before stream: %s", e)

    extra_system = "\n\n".join(m.content for m in body.messages if m.role == "system")
    system = personas.system_prompt_for(db, user.id)
    if extra_system:
        system = f"{system}\n\n{extra_system}"
    messages = [{"role": m.role, "content": m.content} for m in body.messages if m.role != "system"]

    # Fresh session in callback: by the time stream ends, request-scoped db/user may be closed/detached
    user_id = user.id

    async def on_stream_done(full_reply_text: str, model: ModelInfo) -> dict:
        """Save assistant message, record usage and activity, schedule a parsed reminder. Uses fresh DB session."""
        db_fresh = SessionLocal()
        result = {"thread_id": thread_id}
        try:
            output_tokens = _estimate_tokens(full_reply_text)
            try:
                await thread_service.save_message(
                    db_fresh, thread_id, user_id, "assistant", full_reply_text,
                    model=model.id, output_tokens=output_tokens,
                )
            except Exception as e:
                logger.warning("save assistant message failed (stream already sent): %s", e)

            total_tokens = input_tokens + output_tokens
            tracker.track(db_fresh, user_id, NewUsageEvent(
                type=UsageEventType.API_CALL.value,
                resource="chat",
                quantity=1,
                metadata={"model": model.id, "provider": model.provider, "thread_id": thread_id},
                cost=catalog.estimate_conversation_cost(model.id, input_tokens, output_tokens),
            ))
            tracker.track(db_fresh, user_id, NewUsageEvent(
                type=UsageEventType.TOKEN_USAGE.value,
                resource=model.id,
                quantity=total_tokens,
                metadata={"input_tokens": input_tokens, "output_tokens": output_tokens},
                cost=calculate_usage_cost(UsageEventType.TOKEN_USAGE.value, total_tokens, tier),
            ))

            activity = {
                "model": model.id,
                "thread_id": thread_id,
                "question_count": count_questions(input_text),
            }
            topic = detect_topic(input_text)
            if topic:
                activity["topic"] = topic
            engine.record_activity(db_fresh, user_id, ActivityType.CHAT.value, activity)
            if requested is not None and requested.id != model.id:
                engine.record_activity(
                    db_fresh, user_id, ActivityType.MODEL_SWITCH.value, {"from": requested.id, "to": model.id}
                )

            try:
                intent = parse_intent(input_text)
                if intent is not None:
                    result["task_id"] = scheduler.schedule_task(db_fresh, TaskDraft(
                        user_id=user_id,
                        title=intent.title,
                        task_type=TaskType.REMINDER.value,
                        scheduled_for=intent.due_at,
                        metadata={
                            "priority": "medium",
                            "category": "meeting" if intent.kind == "meeting" else "general",
                            "related_thread_id": thread_id,
                            "reminder_type": "meeting" if intent.kind == "meeting" else "task",
                            "notification_channels": ["push"],
                        },
                    ))
            except Exception as e:
                logger.warning("schedule parsed reminder failed: %s", e)
            return result
        finally:
            db_fresh.close()

    return await stream_chat_response(recommendation, optimizer, registry, messages, system, on_stream_done)
