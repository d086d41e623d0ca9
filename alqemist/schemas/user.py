from datetime import datetime
from pydantic import BaseModel


class TokenPayload(BaseModel):
    sub: str  # identity provider user id
    email: str = ""
    name: str = ""
    picture: str | None = None


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    avatar_url: str | None = None
    preferences: dict = {}
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProfileResponse(BaseModel):
    user: UserResponse
    profile_data: dict = {}


class ProfileUpdate(BaseModel):
    """Fields left as None are not changed. profile_data is shallow-merged."""
    name: str | None = None
    avatar_url: str | None = None
    preferences: dict | None = None
    profile_data: dict | None = None
