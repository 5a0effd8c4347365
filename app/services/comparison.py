"""Side-by-side comparison of two runs over the tests they share."""
from typing import Optional

from sqlalchemy.orm import Session

from app.core.errors import EmptyComparison
from app.models.evaluation_result import Verdict
from app.schemas.compare import ComparisonResponse, ComparisonRow, ComparisonSummary
from app.services.run_results import get_results, get_run


def classify_change(score_a: int, score_b: int) -> str:
    passed_a = score_a == Verdict.PASS
    passed_b = score_b == Verdict.PASS
    if passed_a == passed_b:
        return "unchanged"
    return "improved" if passed_b else "regressed"


def compare_runs(
    db: Session,
    run_id_a: str,
    run_id_b: str,
    project_id: Optional[int] = None,
) -> ComparisonResponse:
    run_a = get_run(db, run_id_a, project_id)
    run_b = get_run(db, run_id_b, project_id)

    results_a = {r.test_case_id: r for r in get_results(db, run_a.id)}
    results_b = {r.test_case_id: r for r in get_results(db, run_b.id)}

    # Strictly the intersection: a test present in one run only is left out
    shared = sorted(results_a.keys() & results_b.keys())
    if not shared:
        raise EmptyComparison(f"Runs {run_a.id} and {run_b.id} share no test cases")

    rows = []
    summary = ComparisonSummary()
    for test_id in shared:
        res_a, res_b = results_a[test_id], results_b[test_id]
        change = classify_change(res_a.score, res_b.score)
        setattr(summary, change, getattr(summary, change) + 1)
        rows.append(ComparisonRow(
            test_id=test_id,
            prompt=res_b.prompt,
            expected=res_b.expected,
            run1_output=res_a.model_output,
            run1_score=res_a.score,
            run2_output=res_b.model_output,
            run2_score=res_b.score,
            change=change,
        ))

    return ComparisonResponse(
        project_id=run_a.project_id,
        run1_id=str(run_a.id),
        run1_name=run_a.model_name,
        run2_id=str(run_b.id),
        run2_name=run_b.model_name,
        comparisons=rows,
        summary=summary,
    )
