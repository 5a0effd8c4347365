"""Error taxonomy shared by the evaluation services.

Services raise these; app.main translates them into HTTP responses.
"""


class EvalError(Exception):
    status_code = 500
    code = "eval_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


# --- Validation (rejected before any side effect) ---

class ValidationError(EvalError):
    status_code = 400
    code = "validation_error"


class EmptySuite(ValidationError):
    code = "empty_suite"


class TemplateError(ValidationError):
    code = "template_error"


class InvalidScore(ValidationError):
    code = "invalid_score"


class EmptyComparison(ValidationError):
    code = "empty_comparison"


class RunInProgress(ValidationError):
    status_code = 409
    code = "run_in_progress"


# --- Not found (surfaced, never retried) ---

class NotFoundError(EvalError):
    status_code = 404
    code = "not_found"


class ProjectNotFound(NotFoundError):
    code = "project_not_found"


class RunNotFound(NotFoundError):
    code = "run_not_found"


class ResultNotFound(NotFoundError):
    code = "result_not_found"


class TestCaseNotFound(NotFoundError):
    code = "test_case_not_found"


class PromptVersionNotFound(NotFoundError):
    code = "prompt_version_not_found"


# --- Provider ---

class ProviderError(EvalError):
    """A model provider call failed.

    ``transient`` errors (rate limits, timeouts, 5xx) are retried by the
    runner; permanent ones (bad credentials, unknown model) abort the run.
    """

    status_code = 502
    code = "provider_error"

    def __init__(self, message: str = "", transient: bool = False):
        super().__init__(message)
        self.transient = transient


class RunAborted(ProviderError):
    code = "run_aborted"

    def __init__(self, message: str, run_id: str):
        super().__init__(message, transient=False)
        self.run_id = run_id


class RunCancelled(EvalError):
    status_code = 409
    code = "run_cancelled"

    def __init__(self, run_id: str):
        super().__init__(f"Run {run_id} was cancelled")
        self.run_id = run_id
