from app.db.session import engine
from app.db.base import Base

# Imported so every table is registered on Base.metadata
from app.models.user import User  # noqa: F401
from app.models.project import Project  # noqa: F401
from app.models.test_case import TestCase  # noqa: F401
from app.models.prompt import PromptVersion  # noqa: F401
from app.models.model_run import ModelRun  # noqa: F401
from app.models.evaluation_result import EvaluationResult  # noqa: F401


def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)
