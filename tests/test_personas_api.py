from datetime import timedelta

from alqemist.database import SessionLocal
from alqemist.models.scheduled_task import ScheduledTask
from alqemist.utils.clock import utcnow


async def test_templates(client, auth_headers):
    response = await client.get("/api/personas", params={"action": "templates"}, headers=auth_headers)
    ids = [t["id"] for t in response.json()["templates"]]
    assert "technical-expert" in ids
    assert len(ids) == 5


async def test_active_persona_defaults(client, auth_headers):
    response = await client.get("/api/personas", params={"action": "active"}, headers=auth_headers)
    persona = response.json()["persona"]
    assert persona["name"] == "Alqemist Assistant"
    assert persona["is_default"] is True


async def test_invalid_list_action(client, auth_headers):
    response = await client.get("/api/personas", params={"action": "popular"}, headers=auth_headers)
    assert response.status_code == 400


async def test_create_from_template_and_activate(client, auth_headers):
    created = await client.post(
        "/api/personas",
        json={"action": "from-template", "template_id": "creative-partner", "persona_data": {"name": "Muse"}},
        headers=auth_headers,
    )
    assert created.status_code == 201
    persona_id = created.json()["persona"]["id"]
    assert created.json()["persona"]["name"] == "Muse"

    activated = await client.patch(f"/api/personas/{persona_id}", json={"action": "activate"}, headers=auth_headers)
    assert activated.json()["persona"]["is_active"] is True
    active = await client.get("/api/personas", params={"action": "active"}, headers=auth_headers)
    assert active.json()["persona"]["id"] == persona_id


async def test_create_errors(client, auth_headers):
    no_template = await client.post("/api/personas", json={"action": "from-template"}, headers=auth_headers)
    assert no_template.status_code == 400
    unknown = await client.post(
        "/api/personas", json={"action": "from-template", "template_id": "pirate"}, headers=auth_headers
    )
    assert unknown.status_code == 404
    nameless = await client.post("/api/personas", json={"persona_data": {}}, headers=auth_headers)
    assert nameless.status_code == 400
    bad_action = await client.post("/api/personas", json={"action": "clone"}, headers=auth_headers)
    assert bad_action.status_code == 400


async def test_update_set_default_and_delete(client, auth_headers):
    created = await client.post(
        "/api/personas", json={"persona_data": {"name": "Editor", "tags": ["writing"]}}, headers=auth_headers
    )
    persona_id = created.json()["persona"]["id"]

    updated = await client.patch(
        f"/api/personas/{persona_id}",
        json={"action": "update", "persona_data": {"description": "Tightens prose"}},
        headers=auth_headers,
    )
    assert updated.json()["persona"]["description"] == "Tightens prose"
    assert updated.json()["persona"]["tags"] == ["writing"]

    default = await client.patch(f"/api/personas/{persona_id}", json={"action": "set-default"}, headers=auth_headers)
    assert default.json()["persona"]["is_default"] is True

    listed = await client.get("/api/personas", headers=auth_headers)
    assert [p["name"] for p in listed.json()["personas"]] == ["Editor"]

    assert (await client.delete(f"/api/personas/{persona_id}", headers=auth_headers)).status_code == 200
    assert (await client.delete(f"/api/personas/{persona_id}", headers=auth_headers)).status_code == 404


async def test_patch_errors(client, auth_headers):
    bad = await client.patch("/api/personas/missing", json={"action": "rename"}, headers=auth_headers)
    assert bad.status_code == 400
    missing = await client.patch("/api/personas/missing", json={"action": "activate"}, headers=auth_headers)
    assert missing.status_code == 404


# ---- suggestions ----

def _add_pending_tasks(count: int, category: str = "work"):
    session = SessionLocal()
    try:
        for i in range(count):
            session.add(ScheduledTask(
                user_id="user_1", title=f"Task {i}", task_type="reminder",
                scheduled_for=utcnow() + timedelta(hours=i + 1),
                metadata_={"priority": "medium", "category": category},
            ))
        session.commit()
    finally:
        session.close()


async def test_generate_and_list_suggestions(client, auth_headers):
    # first request creates the local user
    assert (await client.get("/api/suggestions", headers=auth_headers)).json() == {"suggestions": []}
    _add_pending_tasks(3)

    generated = await client.post("/api/suggestions", json={"action": "generate"}, headers=auth_headers)
    body = generated.json()
    assert body["success"] is True
    assert body["generated"] == 1
    assert body["suggestions"][0]["title"] == "Task Batching Opportunity"
    assert body["suggestions"][0]["metadata"]["category"] == "task-management"

    listed = await client.get("/api/suggestions", headers=auth_headers)
    assert [s["title"] for s in listed.json()["suggestions"]] == ["Task Batching Opportunity"]


async def test_suggestion_interactions(client, auth_headers):
    await client.get("/api/suggestions", headers=auth_headers)
    _add_pending_tasks(3)
    generated = await client.post("/api/suggestions", json={"action": "generate"}, headers=auth_headers)
    suggestion_id = generated.json()["suggestions"][0]["id"]

    shown = await client.patch(f"/api/suggestions/{suggestion_id}", json={"action": "mark_shown"}, headers=auth_headers)
    assert shown.json() == {"success": True}
    assert (await client.get("/api/suggestions", headers=auth_headers)).json()["suggestions"] == []
    everything = await client.get("/api/suggestions", params={"include_shown": "true"}, headers=auth_headers)
    assert everything.json()["suggestions"][0]["shown"] is True

    bad = await client.patch(f"/api/suggestions/{suggestion_id}", json={"action": "delete"}, headers=auth_headers)
    assert bad.status_code == 400
    missing = await client.patch("/api/suggestions/missing", json={"action": "dismiss"}, headers=auth_headers)
    assert missing.status_code == 404


async def test_invalid_generate_action(client, auth_headers):
    response = await client.post("/api/suggestions", json={"action": "refresh"}, headers=auth_headers)
    assert response.status_code == 400
