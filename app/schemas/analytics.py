from datetime import datetime
from pydantic import BaseModel
from typing import List, Optional


class FailingTest(BaseModel):
    test_id: int
    prompt: str
    failure_count: int


class PassRatePoint(BaseModel):
    run_id: str
    model_name: str
    pass_rate: int
    completed_at: Optional[datetime] = None


class HealthResponse(BaseModel):
    pass_rate: int          # Latest completed run, 0-100
    drift: int              # Latest minus previous pass rate, positive = better
    models_compared: int    # Distinct model names across the project's runs
    regression_score: int   # Tests that passed before and fail now
    worst_failing_tests: List[FailingTest]
    history: List[PassRatePoint] = []
