import threading
import time
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.errors import ProviderError
from app.core.security import create_access_token
from app.db.init_db import init_db
from app.models.evaluation_result import EvaluationResult
from app.models.model_run import ModelRun, RunStatus
from app.models.project import Project
from app.models.test_case import TestCase
from app.models.user import User
from app.services.providers import ProviderResponse
from app.services.run_results import recompute_run_counts


class FakeProvider:
    """Scripted provider.

    ``script`` maps a rendered prompt to a reply, a ProviderError, or a list of
    those consumed one per call. Unscripted prompts echo ``default``.
    """

    def __init__(self, script=None, default="ok", delays=None):
        self.script = dict(script or {})
        self.default = default
        self.delays = delays or {}
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def invoke(self, model_name, prompt):
        with self._lock:
            self.calls.append((model_name, prompt))
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            step = self.script.get(prompt, self.default)
            if isinstance(step, list):
                step = step.pop(0) if len(step) > 1 else step[0]
        try:
            if prompt in self.delays:
                time.sleep(self.delays[prompt])
            if isinstance(step, Exception):
                raise step
            return ProviderResponse(output=step, input_tokens=10, output_tokens=5, cost=0.001)
        finally:
            with self._lock:
                self.in_flight -= 1


def transient(message="429 rate limited"):
    return ProviderError(message, transient=True)


def permanent(message="401 invalid api key"):
    return ProviderError(message, transient=False)


def add_tests(db, project, rows):
    """Create test cases from dicts (or bare prompts) and return them in id order."""
    created = []
    for fields in rows:
        if isinstance(fields, str):
            fields = {"prompt": fields}
        fields.setdefault("task_type", "general")
        test = TestCase(project_id=project.id, **fields)
        db.add(test)
        created.append(test)
    db.commit()
    for test in created:
        db.refresh(test)
    return created


def make_run(db, project, scores, model_name="gpt-4", status=RunStatus.completed.value, completed_at=None):
    """Persist a run whose results have the given {test_id: score}."""
    run = ModelRun(project_id=project.id, model_name=model_name, status=status)
    if status == RunStatus.completed.value:
        run.completed_at = completed_at or datetime.utcnow()
    db.add(run)
    db.flush()
    for test_id, score in scores.items():
        db.add(EvaluationResult(
            model_run_id=run.id,
            test_case_id=test_id,
            prompt=f"prompt {test_id}",
            rendered_prompt=f"prompt {test_id}",
            expected="expected",
            model_output=f"output {test_id}",
            score=score,
            category="exact_match" if score == 2 else "incorrect",
        ))
    db.flush()
    recompute_run_counts(db, run)
    db.commit()
    db.refresh(run)
    return run


def day(n):
    return datetime(2024, 1, 1) + timedelta(days=n)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def user(db):
    user = User(email="owner@example.com", hashed_password="not-a-real-hash")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def project(db, user):
    project = Project(name="QA bot", domain="general", user_id=user.id)
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def client(db, user, fake_provider):
    from app.main import app
    from app.db.deps import get_db
    from app.core.dependencies import get_provider, get_judge

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_provider] = lambda: fake_provider
    app.dependency_overrides[get_judge] = lambda: None

    test_client = TestClient(app)
    test_client.headers["Authorization"] = f"Bearer {create_access_token(user.email)}"
    yield test_client
    app.dependency_overrides.clear()
