from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.db.deps import get_db
from app.core.dependencies import get_current_user
from app.models.user import User
from app.schemas.user import UserResponse, UserKeysUpdate

router = APIRouter(prefix="/users", tags=["Users"])


def _profile(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        has_openai=bool(user.openai_key),
        has_anthropic=bool(user.anthropic_key),
        has_gemini=bool(user.gemini_key)
    )


@router.get("/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_current_user)):
    return _profile(current_user)


@router.put("/me/keys", response_model=UserResponse)
def update_api_keys(
    keys: UserKeysUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    # Empty string clears a key, None leaves it untouched
    for provider in ("openai", "anthropic", "gemini"):
        value = getattr(keys, f"{provider}_key")
        if value is not None:
            setattr(current_user, f"{provider}_key", value or None)

    db.commit()
    db.refresh(current_user)
    return _profile(current_user)
