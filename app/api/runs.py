import io

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.db.deps import get_db
from app.core.dependencies import get_current_user, get_owned_project, get_provider, get_judge
from app.models.project import Project
from app.schemas.run import RunRequest, RunSummary, RunDetail, ScoreOverride, ScoreOverrideResponse
from app.schemas.compare import ComparisonResponse
from app.services.comparison import compare_runs
from app.services.evaluation_engine import EvaluationRunner
from app.services.export import export_run_csv
from app.services import run_results

router = APIRouter(prefix="/projects/{project_id}/run", tags=["Evaluation"], dependencies=[Depends(get_current_user)])


@router.post("/", response_model=RunSummary)
def run_evaluation(
    payload: RunRequest,
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
    provider=Depends(get_provider),
    judge=Depends(get_judge),
):
    runner = EvaluationRunner(db, provider, judge=judge)
    run = runner.run(
        project_id=project.id,
        model_name=payload.model_name,
        prompt_version_id=payload.prompt_version_id,
    )
    return run_results.run_summary(run)


@router.get("/", response_model=list[RunSummary])
def list_runs(
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    return [run_results.run_summary(run) for run in run_results.list_runs(db, project.id)]


# Declared before /{run_id} routes so "compare" is never read as a run id
@router.get("/compare", response_model=ComparisonResponse)
def compare(
    run_id_1: str,
    run_id_2: str,
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    return compare_runs(db, run_id_1, run_id_2, project_id=project.id)


@router.get("/{run_id}/details", response_model=list[RunDetail])
def get_run_details(
    run_id: str,
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    return run_results.get_run_details(db, run_id, project_id=project.id)


@router.put("/{run_id}/results/{test_id}", response_model=ScoreOverrideResponse)
def update_result_score(
    run_id: str,
    test_id: int,
    payload: ScoreOverride,
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    run = run_results.override_score(db, run_id, test_id, payload.score, project_id=project.id)
    return ScoreOverrideResponse(new_score=payload.score, run=run_results.run_summary(run))


@router.get("/{run_id}/export/csv")
def export_run(
    run_id: str,
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    content = export_run_csv(db, run_id, project_id=project.id)
    return StreamingResponse(
        io.BytesIO(content),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=run_{run_id}_report.csv"}
    )
