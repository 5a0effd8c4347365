from datetime import datetime
from pydantic import BaseModel
from typing import Optional


class RunRequest(BaseModel):
    model_name: str
    prompt_version_id: Optional[str] = None


class RunSummary(BaseModel):
    run_id: str
    model_name: str
    prompt_version_id: Optional[str] = None
    status: str

    total_tests: int
    correct: int
    incorrect: int

    # Analytics
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    estimated_cost: float = 0.0

    error: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class RunDetail(BaseModel):
    test_id: int
    prompt: str
    rendered_prompt: str
    expected: Optional[str] = None
    output: str
    score: int
    category: str
    needs_review: bool = False


class ScoreOverride(BaseModel):
    score: int


class ScoreOverrideResponse(BaseModel):
    status: str = "success"
    new_score: int
    run: RunSummary
