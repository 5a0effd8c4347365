import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, Text, ForeignKey, DateTime, UniqueConstraint
from app.db.base import Base

PROMPT_PLACEHOLDER = "{{prompt}}"


class PromptVersion(Base):
    """Append-only prompt template. A new version is written for every edit."""

    __tablename__ = "prompt_versions"
    __table_args__ = (
        UniqueConstraint("project_id", "version", name="uq_prompt_versions_project_version"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False)

    version = Column(Integer, nullable=False)
    # Must contain PROMPT_PLACEHOLDER exactly once
    template = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
