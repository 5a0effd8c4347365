from pydantic import BaseModel
from typing import List, Literal, Optional

Change = Literal["improved", "regressed", "unchanged"]


class ComparisonRow(BaseModel):
    test_id: int
    prompt: str
    expected: Optional[str]

    # Run 1 Data
    run1_output: str
    run1_score: int

    # Run 2 Data
    run2_output: str
    run2_score: int

    change: Change


class ComparisonSummary(BaseModel):
    improved: int = 0
    regressed: int = 0
    unchanged: int = 0


class ComparisonResponse(BaseModel):
    project_id: int
    run1_id: str
    run1_name: str
    run2_id: str
    run2_name: str

    comparisons: List[ComparisonRow]
    summary: ComparisonSummary
