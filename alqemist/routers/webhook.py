"""
Identity provider webhook: POST /api/webhook/identity
Body is signed with HMAC-SHA256 (hex, optionally "sha256=" prefixed) in X-Webhook-Signature.
user.created / user.updated upsert the local user mirror; other events are acknowledged and ignored.
"""
import hashlib
import hmac
import json
import logging
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from alqemist.config import get_settings
from alqemist.database import get_db
from alqemist.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhook", tags=["webhook"])

UPSERT_EVENTS = ("user.created", "user.updated")


def verify_signature(secret: str, payload: bytes, signature: str | None) -> bool:
    """False when no secret is configured or the signature does not match."""
    if not secret or not signature:
        return False
    expected = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    if "=" in signature:
        signature = signature.split("=", 1)[1]
    return hmac.compare_digest(expected, signature.strip())


def upsert_user(db: Session, data: dict) -> User:
    emails = data.get("email_addresses") or []
    email = (emails[0].get("email_address") if emails else None) or ""
    name = f"{data.get('first_name') or ''} {data.get('last_name') or ''}".strip() or email

    user = db.query(User).filter(User.id == data["id"]).first()
    if user is None:
        user = User(id=data["id"])
        db.add(user)
    user.email = email
    user.name = name
    user.avatar_url = data.get("image_url") or None
    user.preferences = data.get("public_metadata") or {}
    db.commit()
    return user


@router.post("/identity")
async def identity_webhook(
    request: Request,
    x_webhook_signature: str | None = Header(None, alias="X-Webhook-Signature"),
    db: Session = Depends(get_db),
):
    payload = await request.body()
    if not verify_signature(get_settings().identity_webhook_secret, payload, x_webhook_signature):
        logger.warning("Rejected identity webhook: bad or missing signature")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")

    try:
        event = json.loads(payload)
    except json.JSONDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")

    event_type = event.get("type")
    data = event.get("data") or {}
    if event_type in UPSERT_EVENTS:
        if not data.get("id"):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing user id")
        try:
            upsert_user(db, data)
            logger.info("User %s %s from identity webhook", data["id"], event_type.split(".")[1])
        except Exception:
            logger.exception("Failed to upsert user %s from identity webhook", data.get("id"))
            db.rollback()
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to store user")
    return {"success": True}
