from pydantic import BaseModel, Field
from datetime import datetime


class PromptCreate(BaseModel):
    # Must contain {{prompt}} exactly once, checked by the route
    template: str = Field(..., min_length=1)


class PromptResponse(BaseModel):
    id: str
    project_id: int
    version: int
    template: str
    created_at: datetime

    class Config:
        from_attributes = True
