"""Evaluation runner.

Executes a project's test suite against one model. Provider calls fan out on a
bounded thread pool; the calling thread owns the database session and writes
every result in test-id order once the pool has drained.
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core import config
from app.core.errors import (
    EmptySuite,
    EvalError,
    ProjectNotFound,
    PromptVersionNotFound,
    ProviderError,
    RunAborted,
    RunCancelled,
    TemplateError,
)
from app.models.evaluation_result import EvaluationResult, Verdict
from app.models.model_run import ModelRun, RunStatus
from app.models.project import Project
from app.models.prompt import PromptVersion, PROMPT_PLACEHOLDER
from app.models.test_case import TestCase
from app.services.providers import ProviderResponse, classify_error
from app.services.run_results import recompute_run_counts
from app.services.scoring import ScoreResult, score_response

logger = logging.getLogger(__name__)

FAILURE_MARKER = "[Provider Error]"


def validate_template(template: str) -> str:
    count = template.count(PROMPT_PLACEHOLDER)
    if count != 1:
        raise TemplateError(
            f"Template must contain {PROMPT_PLACEHOLDER} exactly once (found {count})"
        )
    return template


def render_prompt(test_case, template: Optional[str] = None) -> str:
    content = test_case.prompt
    if template:
        content = template.replace(PROMPT_PLACEHOLDER, test_case.prompt, 1)

    # RAG documents are appended, never interpolated into the template
    if (test_case.task_type or "").lower() == "rag" and test_case.context:
        content = f"{content}\n\nContext:\n{test_case.context}"
    return content


@dataclass(frozen=True)
class SuiteItem:
    """Detached copy of a test case, safe to hand to worker threads."""

    id: int
    prompt: str
    expected: Optional[str]
    task_type: str
    context: Optional[str]
    rules: Any
    rendered: str


@dataclass
class Outcome:
    item: SuiteItem
    output: Optional[str] = None
    result: Optional[ScoreResult] = None
    response: Optional[ProviderResponse] = None
    error: Optional[ProviderError] = None
    skipped: bool = False

    @property
    def fatal(self) -> bool:
        return self.error is not None and not self.error.transient


@dataclass
class _Signals:
    cancel: Optional[threading.Event] = None
    abort: threading.Event = field(default_factory=threading.Event)

    def stopped(self) -> bool:
        return self.abort.is_set() or (self.cancel is not None and self.cancel.is_set())


class EvaluationRunner:
    def __init__(
        self,
        db: Session,
        provider,
        judge=None,
        max_workers: int = config.RUN_MAX_WORKERS,
        max_retries: int = config.PROVIDER_MAX_RETRIES,
        retry_backoff: float = config.PROVIDER_RETRY_BACKOFF,
        sleep=time.sleep,
    ):
        self.db = db
        self.provider = provider
        self.judge = judge
        self.max_workers = max(1, max_workers)
        self.max_retries = max(1, max_retries)
        self.retry_backoff = retry_backoff
        self._sleep = sleep

    # --- public ---

    def run(
        self,
        project_id: int,
        model_name: str,
        prompt_version_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ModelRun:
        if not self.db.query(Project.id).filter(Project.id == project_id).first():
            raise ProjectNotFound(f"Project {project_id} not found")

        template = self._load_template(project_id, prompt_version_id)

        try:
            suite = self._snapshot_suite(project_id, template)
        except SQLAlchemyError as exc:
            self.db.rollback()
            self._persist_failed(project_id, model_name, prompt_version_id, f"Suite snapshot failed: {exc}")
            raise

        if not suite:
            raise EmptySuite(f"Project {project_id} has no test cases")

        run = ModelRun(
            project_id=project_id,
            model_name=model_name,
            prompt_version_id=prompt_version_id,
            status=RunStatus.pending.value,
            total_tests=0,
            correct=0,
            incorrect=0,
            total_input_tokens=0,
            total_output_tokens=0,
            estimated_cost=0.0,
        )
        self.db.add(run)
        self.db.commit()

        run.status = RunStatus.running.value
        self.db.commit()
        self.db.refresh(run)
        logger.info("Run %s started: %d tests on %s", run.id, len(suite), model_name)

        try:
            outcomes = self._dispatch(suite, model_name, _Signals(cancel=cancel_event))
            return self._finalize(run, outcomes)
        except EvalError:
            raise
        except Exception as exc:
            logger.exception("Run %s failed", run.id)
            self.db.rollback()
            run.status = RunStatus.failed.value
            run.error = str(exc)
            self.db.commit()
            raise

    # --- setup ---

    def _load_template(self, project_id: int, prompt_version_id: Optional[str]) -> Optional[str]:
        if not prompt_version_id:
            return None
        prompt_version = self.db.query(PromptVersion).filter(
            PromptVersion.id == prompt_version_id,
            PromptVersion.project_id == project_id
        ).first()
        if not prompt_version:
            raise PromptVersionNotFound(f"Prompt version {prompt_version_id} not found")
        return validate_template(prompt_version.template)

    def _snapshot_suite(self, project_id: int, template: Optional[str]) -> List[SuiteItem]:
        tests = self.db.query(TestCase).filter(
            TestCase.project_id == project_id
        ).order_by(TestCase.id).all()
        return [
            SuiteItem(
                id=t.id,
                prompt=t.prompt,
                expected=t.expected,
                task_type=t.task_type or "general",
                context=t.context,
                rules=t.rules,
                rendered=render_prompt(t, template),
            )
            for t in tests
        ]

    def _persist_failed(self, project_id, model_name, prompt_version_id, error: str):
        run = ModelRun(
            project_id=project_id,
            model_name=model_name,
            prompt_version_id=prompt_version_id,
            status=RunStatus.failed.value,
            error=error,
        )
        self.db.add(run)
        self.db.commit()
        logger.error("Run %s failed before any model call: %s", run.id, error)

    # --- execution ---

    def _dispatch(self, suite: List[SuiteItem], model_name: str, signals: _Signals) -> List[Outcome]:
        outcomes = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [
                pool.submit(self._evaluate_one, item, model_name, signals)
                for item in suite
            ]
            for future in as_completed(futures):
                outcome = future.result()
                outcomes[outcome.item.id] = outcome
        # Completion order is arbitrary, results are materialized by test id
        return [outcomes[test_id] for test_id in sorted(outcomes)]

    def _evaluate_one(self, item: SuiteItem, model_name: str, signals: _Signals) -> Outcome:
        if signals.stopped():
            return Outcome(item, skipped=True)

        try:
            response = self._invoke_with_retry(model_name, item.rendered, signals)
        except ProviderError as exc:
            if not exc.transient:
                # Stop workers from picking up the rest of the suite
                signals.abort.set()
                return Outcome(item, error=exc)
            if signals.stopped():
                # retries cut short by a stop, the test was never answered
                return Outcome(item, skipped=True)
            logger.warning("Test %s degraded to failure: %s", item.id, exc.message)
            return Outcome(
                item,
                output=f"{FAILURE_MARKER} {exc.message}",
                result=ScoreResult(Verdict.FAIL, "provider_error"),
                error=exc,
            )

        return Outcome(
            item,
            output=response.output,
            result=score_response(item, response.output, self.judge),
            response=response,
        )

    def _invoke_with_retry(self, model_name: str, prompt: str, signals: _Signals) -> ProviderResponse:
        attempt = 1
        while True:
            try:
                return self.provider.invoke(model_name, prompt)
            except Exception as exc:
                error = classify_error(exc)
                retry = error.transient and attempt < self.max_retries and not signals.stopped()
                if retry:
                    logger.warning(
                        "Transient provider error on %s (attempt %d/%d): %s",
                        model_name, attempt, self.max_retries, error.message,
                    )
                    self._sleep(self.retry_backoff * attempt)
                    retry = not signals.stopped()
                if not retry:
                    if error is exc:
                        raise
                    raise error from exc
                attempt += 1

    def _finalize(self, run: ModelRun, outcomes: List[Outcome]) -> ModelRun:
        input_tokens = output_tokens = 0
        cost = 0.0
        for outcome in outcomes:
            if outcome.response is not None:
                input_tokens += outcome.response.input_tokens
                output_tokens += outcome.response.output_tokens
                cost += outcome.response.cost
            if outcome.result is None:
                continue
            self.db.add(EvaluationResult(
                model_run_id=run.id,
                test_case_id=outcome.item.id,
                prompt=outcome.item.prompt,
                rendered_prompt=outcome.item.rendered,
                expected=outcome.item.expected,
                model_output=outcome.output,
                score=int(outcome.result.score),
                category=outcome.result.category,
                needs_review=outcome.result.needs_review,
            ))
        self.db.flush()

        run.total_input_tokens = input_tokens
        run.total_output_tokens = output_tokens
        run.estimated_cost = cost
        recompute_run_counts(self.db, run)

        fatal = next((o.error for o in outcomes if o.fatal), None)
        if fatal is not None:
            run.status = RunStatus.failed.value
            run.error = fatal.message
            self.db.commit()
            logger.error("Run %s aborted: %s", run.id, fatal.message)
            raise RunAborted(fatal.message, run_id=run.id)

        if any(o.skipped for o in outcomes):
            run.status = RunStatus.failed.value
            run.error = "cancelled"
            self.db.commit()
            logger.warning("Run %s cancelled", run.id)
            raise RunCancelled(run.id)

        run.status = RunStatus.completed.value
        run.completed_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(run)
        logger.info(
            "Run %s completed: %d/%d passed, cost $%.6f",
            run.id, run.correct, run.total_tests, run.estimated_cost,
        )
        return run
