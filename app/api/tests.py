import csv
import io
import logging

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File
from sqlalchemy.orm import Session

from app.db.deps import get_db
from app.core.dependencies import get_current_user, get_owned_project
from app.core.errors import TestCaseNotFound
from app.models.project import Project
from app.models.test_case import TestCase, TaskType
from app.schemas.test_case import TestCaseCreate, TestCaseResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects/{project_id}/tests", tags=["Test Cases"],
    dependencies=[Depends(get_current_user)])

TASK_TYPES = {t.value for t in TaskType}


@router.post("/", response_model=TestCaseResponse)
def create_test_case(
    test: TestCaseCreate,
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    new_test = TestCase(
        project_id=project.id,
        prompt=test.prompt,
        task_type=test.task_type.value,
        context=test.context,
        rules=test.rules,
        expected=test.expected
    )

    db.add(new_test)
    db.commit()
    db.refresh(new_test)

    return new_test


@router.get("/", response_model=list[TestCaseResponse])
def list_test_cases(
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    return db.query(TestCase).filter(
        TestCase.project_id == project.id
    ).order_by(TestCase.id).all()


@router.delete("/{test_id}", status_code=204)
def delete_test_case(
    test_id: int,
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    test = db.query(TestCase).filter(
        TestCase.id == test_id,
        TestCase.project_id == project.id
    ).first()

    if not test:
        raise TestCaseNotFound(f"Test case {test_id} not found")

    # Historical results keep their snapshot, only future runs lose the test
    db.delete(test)
    db.commit()


@router.post("/import")
def import_tests(
    file: UploadFile = File(...),
    project: Project = Depends(get_owned_project),
    db: Session = Depends(get_db),
):
    try:
        content = file.file.read().decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV must be UTF-8 encoded")

    # Expected columns: prompt, expected, task_type (context optional)
    count = skipped = 0
    for row in csv.DictReader(io.StringIO(content)):
        prompt = (row.get("prompt") or "").strip()
        if not prompt:
            skipped += 1
            continue
        task_type = (row.get("task_type") or "general").strip().lower()
        if task_type not in TASK_TYPES:
            task_type = TaskType.general.value
        db.add(TestCase(
            project_id=project.id,
            prompt=prompt,
            expected=row.get("expected") or None,
            context=row.get("context") or None,
            task_type=task_type
        ))
        count += 1

    db.commit()
    if skipped:
        logger.info("CSV import for project %s skipped %d rows without a prompt", project.id, skipped)
    return {"message": f"Successfully imported {count} test cases", "imported": count, "skipped": skipped}
