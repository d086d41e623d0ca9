import pytest

from alqemist.models.ai_persona import AiPersona
from alqemist.services.persona_manager import (
    FALLBACK_SYSTEM_PROMPT,
    PERSONA_TEMPLATES,
    PersonaManager,
    PersonaNotFound,
    TemplateNotFound,
    generate_system_prompt,
)


@pytest.fixture
def manager():
    return PersonaManager()


def _personas(db, user_id="user_1"):
    return db.query(AiPersona).filter(AiPersona.user_id == user_id).all()


def test_templates_are_copies(manager):
    templates = manager.get_templates()
    assert [t["id"] for t in templates] == [t["id"] for t in PERSONA_TEMPLATES]
    templates[0]["name"] = "Changed"
    assert PERSONA_TEMPLATES[0]["name"] == "Professional Assistant"


def test_create_from_template(db, user, manager):
    persona = manager.create_from_template(db, user.id, "technical-expert", {"name": "My Dev Buddy"})
    assert persona.name == "My Dev Buddy"
    assert persona.personality["communication_style"] == "technical"
    assert persona.is_active is True
    assert persona.is_default is False


def test_unknown_template(db, user, manager):
    with pytest.raises(TemplateNotFound):
        manager.create_from_template(db, user.id, "pirate")
    assert _personas(db) == []


def test_default_persona_created_on_first_lookup(db, user, manager):
    persona = manager.get_active_persona(db, user.id)
    assert persona.name == "Alqemist Assistant"
    assert persona.is_default is True
    # second lookup reuses it
    assert manager.get_active_persona(db, user.id).id == persona.id
    assert len(_personas(db)) == 1


def test_set_default_is_exclusive(db, user, manager):
    first = manager.create_persona(db, user.id, {"name": "First", "is_default": True})
    second = manager.create_persona(db, user.id, {"name": "Second"})
    manager.set_default(db, user.id, second.id)
    db.refresh(first)
    db.refresh(second)
    assert second.is_default is True
    assert first.is_default is False
    assert sum(p.is_default for p in _personas(db)) == 1


def test_activate_is_exclusive(db, user, manager):
    first = manager.create_persona(db, user.id, {"name": "First"})
    second = manager.create_persona(db, user.id, {"name": "Second"})
    manager.activate(db, user.id, first.id)
    db.refresh(first)
    db.refresh(second)
    assert first.is_active is True
    assert second.is_active is False
    assert first.usage_count == 1
    assert manager.get_active_persona(db, user.id).id == first.id


def test_update_persona(db, user, manager):
    persona = manager.create_persona(db, user.id, {"name": "Old"})
    updated = manager.update_persona(db, persona.id, user.id, {"name": "New", "tags": ["work"], "usage_count": 99})
    assert updated.name == "New"
    assert updated.tags == ["work"]
    assert updated.usage_count == 0


def test_update_persona_default_flag(db, user, manager):
    first = manager.create_persona(db, user.id, {"name": "First", "is_default": True})
    second = manager.create_persona(db, user.id, {"name": "Second"})
    manager.update_persona(db, second.id, user.id, {"is_default": True})
    db.refresh(first)
    assert first.is_default is False


def test_missing_persona(db, user, manager):
    with pytest.raises(PersonaNotFound):
        manager.update_persona(db, "missing", user.id, {"name": "x"})
    with pytest.raises(PersonaNotFound):
        manager.activate(db, user.id, "missing")
    assert manager.delete_persona(db, "missing", user.id) is False


def test_delete_persona(db, user, manager):
    persona = manager.create_persona(db, user.id, {"name": "Temp"})
    assert manager.delete_persona(db, persona.id, user.id) is True
    assert _personas(db) == []


def test_system_prompt_without_persona():
    assert generate_system_prompt(None) == FALLBACK_SYSTEM_PROMPT


def test_system_prompt_from_persona(db, user, manager):
    persona = manager.create_from_template(db, user.id, "technical-expert")
    prompt = generate_system_prompt(persona, {"conversation_goal": "debugging", "user_mood": "frustrated"})
    assert prompt.startswith("You are a technical AI expert")
    assert "Analytical (90%)" in prompt
    assert "Your areas of expertise: Programming" in prompt
    assert "Current context: debugging" in prompt
    assert "User mood: frustrated" in prompt


def test_system_prompt_built_when_custom_prompt_missing(db, user, manager):
    persona = manager.create_persona(db, user.id, {
        "name": "Plain", "description": "A plain helper",
        "personality": {"communication_style": "casual", "traits": [{"name": "Shy", "value": 0.2}]},
    })
    prompt = generate_system_prompt(persona)
    assert prompt.startswith("You are Plain: A plain helper")
    assert "casual" in prompt
    assert "Shy" not in prompt


def test_system_prompt_for_uses_active_persona(db, user, manager):
    prompt = manager.system_prompt_for(db, user.id)
    assert prompt.startswith("You are a helpful AI assistant who is friendly and supportive.")
