"""
Proactive suggestions:
- GET /api/suggestions?limit=5&include_shown=false
- POST /api/suggestions {"action": "generate"} - refresh patterns, generate and store suggestions
- PATCH /api/suggestions/{id} {"action": "mark_shown" | "dismiss" | "interact" | "complete"}
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from alqemist.auth import get_current_user
from alqemist.database import get_db
from alqemist.dependencies import get_suggestion_engine
from alqemist.models.user import User
from alqemist.schemas.suggestion import SuggestionPatch, SuggestionRequest, SuggestionResponse
from alqemist.services.suggestion_engine import ProactiveSuggestionsEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/suggestions", tags=["suggestions"])

PATCH_ACTIONS = ("mark_shown", "dismiss", "interact", "complete")


def _suggestion_out(s) -> dict:
    return SuggestionResponse.model_validate(s).model_dump(mode="json")


@router.get("")
def list_suggestions(
    limit: int = Query(5, ge=1, le=50),
    include_shown: bool = False,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    engine: ProactiveSuggestionsEngine = Depends(get_suggestion_engine),
):
    items = engine.list_suggestions(db, user.id, limit=limit, include_shown=include_shown)
    return {"suggestions": [_suggestion_out(s) for s in items]}


@router.post("")
def generate_suggestions(
    body: SuggestionRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    engine: ProactiveSuggestionsEngine = Depends(get_suggestion_engine),
):
    if body.action != "generate":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid action")
    try:
        engine.refresh_patterns(db, user.id)
    except Exception as e:
        # Stale patterns still give usable suggestions
        logger.warning("refresh_patterns failed for user %s: %s", user.id, e)
    saved = engine.save_suggestions(db, engine.generate_suggestions(db, user.id))
    return {
        "success": True,
        "generated": len(saved),
        "suggestions": [_suggestion_out(s) for s in saved[:3]],
    }


@router.patch("/{suggestion_id}")
def update_suggestion(
    suggestion_id: str,
    body: SuggestionPatch,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    engine: ProactiveSuggestionsEngine = Depends(get_suggestion_engine),
):
    if body.action not in PATCH_ACTIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid action. Use one of: {', '.join(PATCH_ACTIONS)}",
        )
    handler = getattr(engine, body.action)
    if not handler(db, suggestion_id, user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Suggestion not found")
    return {"success": True}
