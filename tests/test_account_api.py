import hashlib
import hmac
import json

from alqemist.database import SessionLocal
from alqemist.models.usage_event import UsageEvent
from alqemist.models.user import User
from alqemist.routers.webhook import verify_signature


def _sign(body: bytes, secret: str = "whsec-test") -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def _get_user(user_id: str):
    session = SessionLocal()
    try:
        return session.query(User).filter(User.id == user_id).first()
    finally:
        session.close()


async def test_health(client):
    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["redis"] == "unavailable"


async def test_profile_created_from_token(client, auth_headers):
    response = await client.get("/api/auth/profile", headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["user"]["id"] == "user_1"
    assert body["user"]["email"] == "user_1@example.com"
    assert body["profile_data"] == {}


async def test_profile_update_merges_profile_data(client, auth_headers):
    await client.put("/api/auth/profile", json={"profile_data": {"job": "editor"}}, headers=auth_headers)
    response = await client.put(
        "/api/auth/profile",
        json={"name": "  Ada  ", "preferences": {"theme": "dark"}, "profile_data": {"city": "Leiden"}},
        headers=auth_headers,
    )
    body = response.json()
    assert body["user"]["name"] == "Ada"
    assert body["user"]["preferences"] == {"theme": "dark"}
    assert body["profile_data"] == {"job": "editor", "city": "Leiden"}


async def test_profile_requires_auth(client):
    assert (await client.get("/api/auth/profile")).status_code == 401


async def test_usage_summary(client, auth_headers, fake_registry):
    await client.get("/api/auth/profile", headers=auth_headers)
    session = SessionLocal()
    try:
        session.add(UsageEvent(user_id="user_1", type="api_call", resource="chat", quantity=3, cost=2,
                               metadata_={"model": "gpt-4o-mini"}))
        session.commit()
    finally:
        session.close()

    response = await client.get("/api/usage", headers=auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["within_limits"] is True
    assert body["usage"]["api_calls"] == 3
    assert body["limits"]["api_calls"] == 10_000
    assert body["tier"]["id"] == "starter"
    assert body["reset_time"].endswith("T00:00:00Z")
    assert "recommendations" in body["optimization"]


async def test_usage_analytics(client, auth_headers):
    response = await client.get("/api/usage/analytics", params={"days": 7}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["start"].endswith("Z")
    too_long = await client.get("/api/usage/analytics", params={"days": 1000}, headers=auth_headers)
    assert too_long.status_code == 422


# ---- identity webhook ----

def test_verify_signature():
    body = b'{"type": "user.created"}'
    assert verify_signature("s3cret", body, _sign(body, "s3cret"))
    assert verify_signature("s3cret", body, "sha256=" + _sign(body, "s3cret"))
    assert not verify_signature("s3cret", body, _sign(body, "other"))
    assert not verify_signature("", body, _sign(body, ""))
    assert not verify_signature("s3cret", body, None)


async def test_webhook_creates_and_updates_user(client):
    event = {
        "type": "user.created",
        "data": {
            "id": "user_42",
            "email_addresses": [{"email_address": "ada@example.com"}],
            "first_name": "Ada",
            "last_name": "Lovelace",
            "image_url": "https://img.example.com/ada.png",
        },
    }
    body = json.dumps(event).encode()
    response = await client.post(
        "/api/webhook/identity", content=body, headers={"X-Webhook-Signature": _sign(body)}
    )
    assert response.status_code == 200
    assert response.json() == {"success": True}
    user = _get_user("user_42")
    assert user.name == "Ada Lovelace"
    assert user.email == "ada@example.com"

    event["type"] = "user.updated"
    event["data"]["first_name"] = "Augusta"
    body = json.dumps(event).encode()
    await client.post("/api/webhook/identity", content=body, headers={"X-Webhook-Signature": "sha256=" + _sign(body)})
    assert _get_user("user_42").name == "Augusta Lovelace"


async def test_webhook_rejects_bad_signature(client):
    body = json.dumps({"type": "user.created", "data": {"id": "user_9"}}).encode()
    bad = await client.post("/api/webhook/identity", content=body, headers={"X-Webhook-Signature": "deadbeef"})
    assert bad.status_code == 400
    missing = await client.post("/api/webhook/identity", content=body)
    assert missing.status_code == 400
    assert _get_user("user_9") is None


async def test_webhook_bad_payloads(client):
    body = b"not json"
    response = await client.post("/api/webhook/identity", content=body, headers={"X-Webhook-Signature": _sign(body)})
    assert response.status_code == 400

    body = json.dumps({"type": "user.created", "data": {}}).encode()
    response = await client.post("/api/webhook/identity", content=body, headers={"X-Webhook-Signature": _sign(body)})
    assert response.status_code == 400


async def test_webhook_ignores_other_events(client):
    body = json.dumps({"type": "session.created", "data": {"id": "sess_1"}}).encode()
    response = await client.post("/api/webhook/identity", content=body, headers={"X-Webhook-Signature": _sign(body)})
    assert response.status_code == 200
