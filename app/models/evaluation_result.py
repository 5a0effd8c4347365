import enum
import uuid

from sqlalchemy import Column, String, Integer, ForeignKey, Text, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship
from app.db.base import Base


class Verdict(enum.IntEnum):
    FAIL = 0
    UNUSED = 1  # reserved, never produced by the scorer
    PASS = 2


class EvaluationResult(Base):
    """One test case's outcome within a run."""

    __tablename__ = "evaluation_results"
    __table_args__ = (
        UniqueConstraint("model_run_id", "test_case_id", name="uq_evaluation_results_run_test"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    model_run_id = Column(String, ForeignKey("model_runs.id"), nullable=False, index=True)

    # No FK: history must survive deletion of the test case
    test_case_id = Column(Integer, nullable=False, index=True)

    # Snapshots taken when the run executed
    prompt = Column(Text, nullable=False)
    rendered_prompt = Column(Text, nullable=False)
    expected = Column(Text, nullable=True)

    model_output = Column(Text, nullable=False)
    score = Column(Integer, nullable=False)
    category = Column(String, nullable=False)
    needs_review = Column(Boolean, default=False, nullable=False)

    run = relationship("ModelRun", back_populates="results")
