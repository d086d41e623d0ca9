"""
AI personas:
- GET /api/personas (?action=templates | active)
- POST /api/personas - create, or {"action": "from-template", "template_id": ...}
- PATCH /api/personas/{id} - update | activate | set-default
- DELETE /api/personas/{id}
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from alqemist.auth import get_current_user
from alqemist.database import get_db
from alqemist.dependencies import get_persona_manager
from alqemist.models.user import User
from alqemist.schemas.persona import PersonaCreate, PersonaPatch, PersonaResponse
from alqemist.services.persona_manager import PersonaManager, PersonaNotFound, TemplateNotFound

router = APIRouter(prefix="/api/personas", tags=["personas"])

PATCH_ACTIONS = ("update", "activate", "set-default")


def _persona_out(persona) -> dict:
    return PersonaResponse.model_validate(persona).model_dump(mode="json")


@router.get("")
def list_personas(
    action: str | None = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    manager: PersonaManager = Depends(get_persona_manager),
):
    if action == "templates":
        return {"templates": manager.get_templates()}
    if action == "active":
        persona = manager.get_active_persona(db, user.id)
        return {"persona": _persona_out(persona) if persona else None}
    if action is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid action")
    return {"personas": [_persona_out(p) for p in manager.list_personas(db, user.id)]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_persona(
    body: PersonaCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    manager: PersonaManager = Depends(get_persona_manager),
):
    data = body.persona_data.model_dump(exclude_none=True)
    if body.action == "from-template":
        if not body.template_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="template_id is required")
        try:
            persona = manager.create_from_template(db, user.id, body.template_id, data)
        except TemplateNotFound:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
    elif body.action is None:
        if not data.get("name"):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name is required")
        persona = manager.create_persona(db, user.id, data)
    else:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid action")
    return {"success": True, "persona": _persona_out(persona)}


@router.patch("/{persona_id}")
def update_persona(
    persona_id: str,
    body: PersonaPatch,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    manager: PersonaManager = Depends(get_persona_manager),
):
    if body.action not in PATCH_ACTIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid action. Use one of: {', '.join(PATCH_ACTIONS)}",
        )
    try:
        if body.action == "activate":
            persona = manager.activate(db, user.id, persona_id)
        elif body.action == "set-default":
            persona = manager.set_default(db, user.id, persona_id)
        else:
            persona = manager.update_persona(db, persona_id, user.id, body.persona_data.model_dump(exclude_none=True))
    except PersonaNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Persona not found")
    return {"success": True, "persona": _persona_out(persona)}


@router.delete("/{persona_id}")
def delete_persona(
    persona_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    manager: PersonaManager = Depends(get_persona_manager),
):
    if not manager.delete_persona(db, persona_id, user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Persona not found")
    return {"success": True}
