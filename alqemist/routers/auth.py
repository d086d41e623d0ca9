"""
Current-user profile (the identity provider owns sign-in; we only keep a local mirror):
- GET /api/auth/profile
- PUT /api/auth/profile - name, avatar_url, preferences, profile_data
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from alqemist.auth import get_current_user
from alqemist.database import get_db
from alqemist.models.user import User
from alqemist.models.user_profile import UserProfile
from alqemist.schemas.user import ProfileResponse, ProfileUpdate, UserResponse
from alqemist.utils.clock import utcnow

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _profile_response(db: Session, user: User) -> ProfileResponse:
    profile = db.query(UserProfile).filter(UserProfile.user_id == user.id).first()
    return ProfileResponse(
        user=UserResponse.model_validate(user),
        profile_data=(profile.profile_data if profile else None) or {},
    )


@router.get("/profile", response_model=ProfileResponse)
def get_profile(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _profile_response(db, user)


@router.put("/profile", response_model=ProfileResponse)
def update_profile(
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if body.name is not None:
        user.name = body.name.strip()
    if body.avatar_url is not None:
        user.avatar_url = body.avatar_url or None
    if body.preferences is not None:
        user.preferences = body.preferences
    if body.profile_data is not None:
        profile = db.query(UserProfile).filter(UserProfile.user_id == user.id).first()
        if profile is None:
            profile = UserProfile(user_id=user.id, profile_data={})
            db.add(profile)
        # reassign so the JSON column is marked dirty
        profile.profile_data = {**(profile.profile_data or {}), **body.profile_data}
        profile.updated_at = utcnow()
    db.commit()
    db.refresh(user)
    return _profile_response(db, user)
