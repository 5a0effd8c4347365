import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Float, Text
from sqlalchemy.orm import relationship
from app.db.base import Base


class RunStatus(str, enum.Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"


class ModelRun(Base):
    __tablename__ = "model_runs"

    # Opaque token, exposed to clients as run_id
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    model_name = Column(String, nullable=False)
    status = Column(String, default=RunStatus.pending.value, nullable=False)

    prompt_version_id = Column(String, ForeignKey("prompt_versions.id"), nullable=True)

    # Recomputed from evaluation_results, never incremented in place
    total_tests = Column(Integer, default=0, nullable=False)
    correct = Column(Integer, default=0, nullable=False)
    incorrect = Column(Integer, default=0, nullable=False)

    # Analytics
    total_input_tokens = Column(Integer, default=0)
    total_output_tokens = Column(Integer, default=0)
    estimated_cost = Column(Float, default=0.0)

    error = Column(Text, nullable=True)

    started_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    project = relationship("Project", back_populates="runs")
    results = relationship(
        "EvaluationResult",
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="EvaluationResult.test_case_id",
    )
