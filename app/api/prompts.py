from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import desc, func

from app.db.deps import get_db
from app.core.dependencies import get_current_user, get_owned_project
from app.models.project import Project
from app.models.prompt import PromptVersion
from app.schemas.prompt import PromptCreate, PromptResponse
from app.services.evaluation_engine import validate_template

router = APIRouter(prefix="/projects/{project_id}/prompts", tags=["Prompts"],
    dependencies=[Depends(get_current_user)])


@router.post("/", response_model=PromptResponse)
def create_prompt_version(
    payload: PromptCreate,
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    # Rejected before anything is written
    validate_template(payload.template)

    # Append-only: every save is a new version
    last_version = db.query(func.max(PromptVersion.version)).filter(
        PromptVersion.project_id == project.id
    ).scalar()

    prompt = PromptVersion(
        project_id=project.id,
        version=(last_version or 0) + 1,
        template=payload.template
    )

    db.add(prompt)
    db.commit()
    db.refresh(prompt)

    return prompt


@router.get("/", response_model=list[PromptResponse])
def list_prompts(
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    return db.query(PromptVersion).filter(
        PromptVersion.project_id == project.id
    ).order_by(desc(PromptVersion.version)).all()
