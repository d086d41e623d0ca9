import json

from alqemist.database import SessionLocal
from alqemist.models.message import Message
from alqemist.models.scheduled_task import ScheduledTask
from alqemist.models.usage_event import UsageEvent
from alqemist.models.user_activity import UserActivity
from alqemist.services.model_catalog import DEFAULT_CATALOG
from conftest import ProviderError, make_token


def _events(response) -> list[dict]:
    return [
        json.loads(block[len("data: "):])
        for block in response.text.split("\n\n")
        if block.startswith("data: ")
    ]


def _chat_body(text: str, **extra) -> dict:
    return {"messages": [{"role": "user", "content": text}], **extra}


def _query(model):
    session = SessionLocal()
    try:
        return session.query(model).all()
    finally:
        session.close()


async def test_chat_requires_token(client, fake_registry):
    response = await client.post("/api/chat", json=_chat_body("hi"))
    assert response.status_code == 401


async def test_chat_rejects_bad_token(client, fake_registry):
    headers = {"Authorization": "Bearer not-a-jwt"}
    response = await client.post("/api/chat", json=_chat_body("hi"), headers=headers)
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired token"


async def test_chat_streams_reply(client, auth_headers, fake_registry, providers):
    response = await client.post("/api/chat", json=_chat_body("Hello there"), headers=auth_headers)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")

    events = _events(response)
    assert events[0]["model"]["id"] == "gemini-1.5-flash"
    assert "fallback_from" not in events[0]["model"]
    text = "".join(e["delta"] for e in events if "delta" in e)
    assert text == "Hello from google model."
    done = events[-1]
    assert done["done"] is True
    assert done["model"] == "gemini-1.5-flash"
    assert done["thread_id"]
    assert "task_id" not in done
    assert providers["google"].calls == ["gemini-1.5-flash"]


async def test_chat_persists_thread_and_usage(client, auth_headers, fake_registry):
    response = await client.post("/api/chat", json=_chat_body("How do I use pandas?"), headers=auth_headers)
    thread_id = _events(response)[-1]["thread_id"]

    detail = await client.get(f"/api/threads/{thread_id}", headers=auth_headers)
    assert detail.status_code == 200
    body = detail.json()
    assert body["thread"]["title"] == "How do I use pandas?"
    assert [(m["role"], m["content"]) for m in body["messages"]] == [
        ("user", "How do I use pandas?"),
        ("assistant", "Hello from google model."),
    ]
    assert body["messages"][1]["model"] == "gemini-1.5-flash"

    events = {e.type: e for e in _query(UsageEvent)}
    assert set(events) == {"api_call", "token_usage"}
    assert events["api_call"].metadata_["model"] == "gemini-1.5-flash"
    assert events["api_call"].metadata_["thread_id"] == thread_id
    assert events["token_usage"].quantity > 0

    activity = [a for a in _query(UserActivity) if a.activity_type == "chat"]
    assert activity[0].data["topic"] == "python"
    assert activity[0].data["question_count"] == 1


async def test_chat_continues_existing_thread(client, auth_headers, fake_registry):
    created = await client.post("/api/threads", json={"title": "Ideas"}, headers=auth_headers)
    thread_id = created.json()["id"]
    response = await client.post("/api/chat", json=_chat_body("More ideas", threadId=thread_id), headers=auth_headers)
    assert _events(response)[-1]["thread_id"] == thread_id
    assert len(_query(Message)) == 2


async def test_chat_unknown_thread(client, auth_headers, fake_registry):
    response = await client.post("/api/chat", json=_chat_body("hi", thread_id="missing"), headers=auth_headers)
    assert response.status_code == 404


async def test_fallback_before_first_token(client, auth_headers, fake_registry, providers):
    providers["google"].error = ProviderError("Service unavailable", status_code=503)
    response = await client.post("/api/chat", json=_chat_body("Hello there"), headers=auth_headers)

    events = _events(response)
    assert events[0]["model"] == {
        "id": "gpt-4o-mini",
        "name": "GPT-4o Mini",
        "provider": "openai",
        "fallback_from": "gemini-1.5-flash",
    }
    assert "".join(e["delta"] for e in events if "delta" in e) == "Hello from openai model."
    assert events[-1]["done"] is True
    assert events[-1]["model"] == "gpt-4o-mini"
    assert providers["openai"].calls == ["gpt-4o-mini"]


async def test_fallback_walks_the_chain(client, auth_headers, fake_registry, providers):
    providers["google"].error = ProviderError("Service unavailable", status_code=503)
    providers["openai"].error = ProviderError("Service unavailable", status_code=503)
    response = await client.post("/api/chat", json=_chat_body("Hello there"), headers=auth_headers)

    events = _events(response)
    assert events[0]["model"]["id"] == "claude-3-haiku-20240307"
    assert events[0]["model"]["fallback_from"] == "gemini-1.5-flash"
    assert events[-1]["done"] is True
    assert events[-1]["model"] == "claude-3-haiku-20240307"
    assert providers["openai"].calls == ["gpt-4o-mini"]
    assert providers["anthropic"].calls == ["claude-3-haiku-20240307"]
    assert providers["openrouter"].calls == []


async def test_error_when_every_model_fails(client, auth_headers, fake_registry, providers):
    for provider in providers.values():
        provider.error = ProviderError("Service unavailable", status_code=503)
    response = await client.post("/api/chat", json=_chat_body("Hello there"), headers=auth_headers)

    events = _events(response)
    assert events == [{"error": "AI service temporarily unavailable.", "kind": "unavailable"}]
    assert [m.role for m in _query(Message)] == ["user"]
    assert providers["openrouter"].calls == ["meta-llama/llama-3.2-90b-vision-instruct"]


async def test_failure_after_first_token_ends_stream(client, auth_headers, fake_registry, providers):
    providers["google"].error = ProviderError("connection reset")
    providers["google"].fail_after = 1
    response = await client.post("/api/chat", json=_chat_body("Hello there"), headers=auth_headers)

    events = _events(response)
    assert events[0]["model"]["id"] == "gemini-1.5-flash"
    assert events[-1] == {"error": "AI service interrupted. Please try again.", "kind": "unavailable"}
    assert not any(e.get("done") for e in events)
    assert providers["openai"].calls == []


async def test_requested_model_is_used(client, auth_headers, fake_registry):
    body = _chat_body("Hello there", model="claude-3-haiku-20240307")
    events = _events(await client.post("/api/chat", json=body, headers=auth_headers))
    assert events[0]["model"]["id"] == "claude-3-haiku-20240307"


async def test_model_header_is_used(client, auth_headers, fake_registry):
    headers = {**auth_headers, "X-Model": "gpt-3.5-turbo"}
    events = _events(await client.post("/api/chat", json=_chat_body("Hello there"), headers=headers))
    assert events[0]["model"]["id"] == "gpt-3.5-turbo"


async def test_requested_model_without_vision_is_replaced(client, auth_headers, fake_registry):
    body = _chat_body("Describe this image", model="gpt-3.5-turbo", has_attachments=True)
    events = _events(await client.post("/api/chat", json=body, headers=auth_headers))
    assert events[0]["model"]["id"] != "gpt-3.5-turbo"
    assert "vision" in DEFAULT_CATALOG.get(events[0]["model"]["id"]).features
    assert events[-1]["done"] is True


async def test_model_above_tier_is_replaced(client, auth_headers, fake_registry):
    body = _chat_body("Hello there", model="o1-preview")
    events = _events(await client.post("/api/chat", json=body, headers=auth_headers))
    assert events[0]["model"]["id"] == "gemini-1.5-flash"


async def test_reminder_intent_creates_task(client, auth_headers, fake_registry):
    response = await client.post(
        "/api/chat", json=_chat_body("Please remind me to stretch in 30 minutes"), headers=auth_headers
    )
    done = _events(response)[-1]
    assert done["task_id"]

    task = await client.get(f"/api/tasks/{done['task_id']}", headers=auth_headers)
    assert task.status_code == 200
    assert task.json()["title"] == "stretch"
    assert task.json()["metadata"]["related_thread_id"] == done["thread_id"]
    assert len(_query(ScheduledTask)) == 1


async def test_out_of_range_reminder_still_finishes(client, auth_headers, fake_registry):
    response = await client.post(
        "/api/chat", json=_chat_body("remind me to x in 99999999999 days"), headers=auth_headers
    )
    done = _events(response)[-1]
    assert done["done"] is True
    assert done["thread_id"]
    assert "task_id" not in done
    assert _query(ScheduledTask) == []


async def test_quota_exceeded(client, db, user, auth_headers, fake_registry, providers):
    db.add(UsageEvent(user_id=user.id, type="api_call", resource="chat", quantity=10_001))
    db.commit()
    response = await client.post("/api/chat", json=_chat_body("Hello there"), headers=auth_headers)

    assert response.status_code == 429
    body = response.json()
    assert body["error"] == "Usage limit exceeded"
    assert body["message"]
    assert body["resetTime"].endswith("T00:00:00Z")
    assert providers["google"].calls == []


async def test_recommend(client, auth_headers, fake_registry):
    response = await client.post("/api/chat/recommend", json={"input_text": "hi"}, headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["primary"]["id"] == "gemini-1.5-flash"
    assert [m["id"] for m in body["fallbacks"]] == [
        "gpt-4o-mini", "claude-3-haiku-20240307", "meta-llama/llama-3.2-90b-vision-instruct"
    ]


async def test_list_models_for_tier(client, auth_headers, fake_registry):
    response = await client.get("/api/models", headers=auth_headers)
    body = response.json()
    assert body["tier"] == "starter"
    assert all(m["tier"] == "starter" for m in body["models"])
    assert "gpt-4o" not in [m["id"] for m in body["models"]]


async def test_other_user_cannot_read_thread(client, auth_headers, fake_registry):
    response = await client.post("/api/chat", json=_chat_body("Hello there"), headers=auth_headers)
    thread_id = _events(response)[-1]["thread_id"]
    other = {"Authorization": f"Bearer {make_token('user_2')}"}
    assert (await client.get(f"/api/threads/{thread_id}", headers=other)).status_code == 404
