"""Project health metrics, recomputed from persisted results on every call."""
from typing import Dict, List

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from app.core import config
from app.core.errors import ProjectNotFound
from app.models.evaluation_result import EvaluationResult, Verdict
from app.models.model_run import ModelRun, RunStatus
from app.models.project import Project
from app.models.test_case import TestCase
from app.schemas.analytics import FailingTest, HealthResponse, PassRatePoint
from app.services.run_results import pass_rate, tally


def _scores_by_test(db: Session, run_id: str) -> Dict[int, int]:
    rows = db.query(EvaluationResult.test_case_id, EvaluationResult.score).filter(
        EvaluationResult.model_run_id == run_id
    ).all()
    return {test_id: score for test_id, score in rows}


def run_pass_rate(db: Session, run_id: str) -> int:
    total, correct, _ = tally(_scores_by_test(db, run_id).values())
    return pass_rate(correct, total)


def regression_count(previous: Dict[int, int], latest: Dict[int, int]) -> int:
    """Tests passing in ``previous`` and failing in ``latest``, shared tests only."""
    return sum(
        1
        for test_id in previous.keys() & latest.keys()
        if previous[test_id] == Verdict.PASS and latest[test_id] == Verdict.FAIL
    )


def completed_runs(db: Session, project_id: int) -> List[ModelRun]:
    """Completed runs, newest first."""
    return db.query(ModelRun).filter(
        ModelRun.project_id == project_id,
        ModelRun.status == RunStatus.completed.value
    ).order_by(desc(ModelRun.completed_at), desc(ModelRun.started_at)).all()


def worst_failing_tests(db: Session, project_id: int, limit: int) -> List[FailingTest]:
    # Inner join on tests drops test cases deleted since they failed
    rows = db.query(
        TestCase.id,
        TestCase.prompt,
        func.count(EvaluationResult.id).label("fail_count")
    ).join(EvaluationResult, EvaluationResult.test_case_id == TestCase.id)\
     .join(ModelRun, EvaluationResult.model_run_id == ModelRun.id)\
     .filter(
         ModelRun.project_id == project_id,
         TestCase.project_id == project_id,
         EvaluationResult.score == Verdict.FAIL.value
     )\
     .group_by(TestCase.id, TestCase.prompt)\
     .order_by(desc("fail_count"), TestCase.id)\
     .limit(limit).all()

    return [
        FailingTest(test_id=t.id, prompt=t.prompt, failure_count=t.fail_count)
        for t in rows
    ]


def compute_health(db: Session, project_id: int, limit: int = config.WORST_FAILING_LIMIT) -> HealthResponse:
    if not db.query(Project.id).filter(Project.id == project_id).first():
        raise ProjectNotFound(f"Project {project_id} not found")

    runs = completed_runs(db, project_id)

    models_compared = db.query(ModelRun.model_name).filter(
        ModelRun.project_id == project_id
    ).distinct().count()

    history = [
        PassRatePoint(
            run_id=str(run.id),
            model_name=run.model_name,
            pass_rate=run_pass_rate(db, run.id),
            completed_at=run.completed_at,
        )
        for run in reversed(runs)
    ]

    current_rate = drift = regression_score = 0
    if runs:
        current_rate = history[-1].pass_rate
        if len(runs) > 1:
            drift = current_rate - history[-2].pass_rate
            regression_score = regression_count(
                _scores_by_test(db, runs[1].id),
                _scores_by_test(db, runs[0].id),
            )

    return HealthResponse(
        pass_rate=current_rate,
        drift=drift,
        models_compared=models_compared,
        regression_score=regression_score,
        worst_failing_tests=worst_failing_tests(db, project_id, limit),
        history=history,
    )
