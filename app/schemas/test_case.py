from pydantic import BaseModel
from typing import Optional, Dict

from app.models.test_case import TaskType


class TestCaseCreate(BaseModel):
    prompt: str
    task_type: TaskType = TaskType.general
    context: Optional[str] = None
    rules: Optional[Dict] = None
    expected: Optional[str] = None


class TestCaseResponse(BaseModel):
    id: int
    prompt: str
    task_type: str
    context: Optional[str] = None
    rules: Optional[Dict] = None
    expected: Optional[str] = None

    class Config:
        from_attributes = True
