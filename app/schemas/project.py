from pydantic import BaseModel, Field


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1)
    domain: str = "general"


class ProjectResponse(BaseModel):
    id: int
    name: str
    domain: str

    class Config:
        from_attributes = True
