import csv
import io
from typing import Optional

from sqlalchemy.orm import Session

from app.models.evaluation_result import Verdict
from app.services.run_results import get_results, get_run

CSV_HEADER = ["test_id", "prompt", "expected", "output", "verdict"]


def export_run_csv(db: Session, run_id: str, project_id: Optional[int] = None) -> bytes:
    """Serialize a run's results as UTF-8 CSV, one row per result in test id order."""
    run = get_run(db, run_id, project_id)

    output = io.StringIO()
    # QUOTE_MINIMAL quotes any field holding a comma, quote or line break
    writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
    writer.writerow(CSV_HEADER)

    for res in get_results(db, run.id):
        writer.writerow([
            res.test_case_id,
            res.prompt,
            res.expected or "",
            res.model_output,
            "PASS" if res.score == Verdict.PASS else "FAIL",
        ])

    return output.getvalue().encode("utf-8")
