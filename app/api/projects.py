from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.deps import get_db
from app.core.dependencies import get_current_user, get_owned_project
from app.models.user import User
from app.models.project import Project
from app.schemas.project import ProjectCreate, ProjectResponse
from app.schemas.analytics import HealthResponse
from app.services.health import compute_health

router = APIRouter(prefix="/projects", tags=["Projects"],
    dependencies=[Depends(get_current_user)])


@router.post("/", response_model=ProjectResponse)
def create_project(
    project: ProjectCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    new_project = Project(
        name=project.name,
        domain=project.domain,
        user_id=current_user.id
    )
    db.add(new_project)
    db.commit()
    db.refresh(new_project)
    return new_project


@router.get("/", response_model=list[ProjectResponse])
def list_projects(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return db.query(Project).filter(Project.user_id == current_user.id).all()


@router.post("/{project_id}/health", response_model=HealthResponse)
def get_project_health(
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    return compute_health(db, project.id)


@router.delete("/{project_id}")
def delete_project(
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    # ORM cascades remove tests, prompt versions, runs and their results
    project_id = project.id
    db.delete(project)
    db.commit()

    return {"status": "success", "message": f"Project {project_id} deleted"}
