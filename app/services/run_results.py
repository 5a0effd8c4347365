"""Run counters, read helpers and manual score overrides.

Counters on ``ModelRun`` are always recomputed from its evaluation results,
never incremented.
"""
import logging
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import desc
from sqlalchemy.orm import Session

from app.core.errors import InvalidScore, ResultNotFound, RunInProgress, RunNotFound
from app.models.evaluation_result import EvaluationResult, Verdict
from app.models.model_run import ModelRun, RunStatus
from app.schemas.run import RunDetail, RunSummary

logger = logging.getLogger(__name__)


def tally(scores: Iterable[int]) -> Tuple[int, int, int]:
    """Return (total, correct, incorrect) for a run's scores."""
    scores = list(scores)
    correct = sum(1 for s in scores if s == Verdict.PASS)
    return len(scores), correct, len(scores) - correct


def pass_rate(correct: int, total: int) -> int:
    """Integer percentage rounded half up, 0 for an empty run."""
    if total <= 0:
        return 0
    return (correct * 200 + total) // (2 * total)


def recompute_run_counts(db: Session, run: ModelRun) -> ModelRun:
    scores = db.query(EvaluationResult.score).filter(
        EvaluationResult.model_run_id == run.id
    ).all()
    run.total_tests, run.correct, run.incorrect = tally(s for (s,) in scores)
    return run


def get_run(db: Session, run_id: str, project_id: Optional[int] = None) -> ModelRun:
    query = db.query(ModelRun).filter(ModelRun.id == str(run_id))
    if project_id is not None:
        query = query.filter(ModelRun.project_id == project_id)
    run = query.first()
    if not run:
        raise RunNotFound(f"Run {run_id} not found")
    return run


def run_summary(run: ModelRun) -> RunSummary:
    return RunSummary(
        run_id=str(run.id),
        model_name=run.model_name,
        prompt_version_id=run.prompt_version_id,
        status=run.status,
        total_tests=run.total_tests or 0,
        correct=run.correct or 0,
        incorrect=run.incorrect or 0,
        total_input_tokens=run.total_input_tokens or 0,
        total_output_tokens=run.total_output_tokens or 0,
        estimated_cost=run.estimated_cost or 0.0,
        error=run.error,
        created_at=run.started_at,
        completed_at=run.completed_at,
    )


def list_runs(db: Session, project_id: int) -> List[ModelRun]:
    return db.query(ModelRun).filter(
        ModelRun.project_id == project_id
    ).order_by(desc(ModelRun.started_at)).all()


def get_results(db: Session, run_id: str) -> List[EvaluationResult]:
    return db.query(EvaluationResult).filter(
        EvaluationResult.model_run_id == str(run_id)
    ).order_by(EvaluationResult.test_case_id).all()


def get_run_details(db: Session, run_id: str, project_id: Optional[int] = None) -> List[RunDetail]:
    run = get_run(db, run_id, project_id)
    return [
        RunDetail(
            test_id=res.test_case_id,
            prompt=res.prompt,
            rendered_prompt=res.rendered_prompt,
            expected=res.expected,
            output=res.model_output,
            score=res.score,
            category=res.category,
            needs_review=res.needs_review,
        )
        for res in get_results(db, run.id)
    ]


def override_score(
    db: Session,
    run_id: str,
    test_id: int,
    score: int,
    project_id: Optional[int] = None,
) -> ModelRun:
    """Overwrite one result's score and recompute the run counters.

    The run header is locked first so overrides on the same run serialize and
    the recomputed counters never lose an update.
    """
    try:
        verdict = Verdict(score)
    except ValueError:
        raise InvalidScore(f"Score must be one of {[v.value for v in Verdict]}, got {score}")

    query = db.query(ModelRun).filter(ModelRun.id == str(run_id))
    if project_id is not None:
        query = query.filter(ModelRun.project_id == project_id)
    run = query.with_for_update().first()
    if not run:
        raise RunNotFound(f"Run {run_id} not found")
    if run.status in (RunStatus.pending.value, RunStatus.running.value):
        raise RunInProgress(f"Run {run_id} is still {run.status}")

    result = db.query(EvaluationResult).filter(
        EvaluationResult.model_run_id == run.id,
        EvaluationResult.test_case_id == test_id
    ).with_for_update().first()
    if not result:
        raise ResultNotFound(f"No result for test {test_id} in run {run_id}")

    result.score = verdict.value
    result.category = "manual_override"
    result.needs_review = False
    db.flush()

    recompute_run_counts(db, run)
    db.commit()
    db.refresh(run)

    logger.info("Score override run=%s test=%s score=%s", run.id, test_id, verdict.value)
    return run
