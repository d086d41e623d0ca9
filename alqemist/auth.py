"""
Bearer-token authentication. Sessions are JWTs issued by the identity provider; we only verify them
and mirror the user locally (id = `sub`).
"""
import logging

from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from alqemist.config import get_settings
from alqemist.database import get_db
from alqemist.models.user import User
from alqemist.schemas.user import TokenPayload

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def decode_token(token: str) -> TokenPayload | None:
    settings = get_settings()
    options = {"verify_aud": False}
    try:
        payload = jwt.decode(
            token,
            settings.identity_jwt_secret,
            algorithms=[settings.identity_jwt_algorithm],
            issuer=settings.identity_jwt_issuer or None,
            options=options,
        )
        if not payload.get("sub"):
            return None
        return TokenPayload(
            sub=str(payload["sub"]),
            email=payload.get("email") or "",
            name=payload.get("name") or "",
            picture=payload.get("picture"),
        )
    except JWTError:
        return None


def get_or_create_user(db: Session, payload: TokenPayload) -> User:
    """Local mirror of the token's user; created on first request (webhook may not have arrived yet)."""
    user = db.query(User).filter(User.id == payload.sub).first()
    if user is not None:
        return user
    user = User(id=payload.sub, email=payload.email, name=payload.name, avatar_url=payload.picture)
    db.add(user)
    try:
        db.commit()
    except SQLAlchemyError:
        # Concurrent first requests: the other one won
        db.rollback()
        user = db.query(User).filter(User.id == payload.sub).first()
        if user is None:
            raise
        return user
    db.refresh(user)
    logger.info("Created local user %s from token", payload.sub)
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(credentials.credentials)

    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return get_or_create_user(db, payload)
