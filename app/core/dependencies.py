from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from app.core.config import SECRET_KEY, ALGORITHM, JUDGE_MODEL
from app.db.deps import get_db
from app.models.user import User
from app.models.project import Project
from app.services.providers import ProviderRouter, LLMJudge

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
):
    credentials_error = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid token",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise credentials_error

    user_email = payload.get("sub")
    if user_email is None:
        raise credentials_error

    user = db.query(User).filter(User.email == user_email).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return user


def get_owned_project(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> Project:
    project = db.query(Project).filter(
        Project.id == project_id,
        Project.user_id == current_user.id
    ).first()

    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


def get_provider(current_user: User = Depends(get_current_user)) -> ProviderRouter:
    # User keys win over the server's environment keys
    return ProviderRouter(api_keys={
        "openai": current_user.openai_key,
        "anthropic": current_user.anthropic_key,
        "gemini": current_user.gemini_key,
    })


def get_judge(provider: ProviderRouter = Depends(get_provider)):
    if not JUDGE_MODEL:
        return None
    return LLMJudge(provider, JUDGE_MODEL)
