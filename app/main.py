import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import CORS_ORIGINS, LOG_LEVEL
from app.core.errors import EvalError
from app.db.init_db import init_db
from app.api.projects import router as project_router
from app.api.tests import router as test_router
from app.api.runs import router as run_router
from app.api.prompts import router as prompt_router
from app.api.user import router as user_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app):
    init_db()
    yield


app = FastAPI(title="TrustLLM Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EvalError)
async def handle_eval_error(request: Request, exc: EvalError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    body = {"detail": exc.message, "code": exc.code}
    run_id = getattr(exc, "run_id", None)
    if run_id:
        body["run_id"] = run_id
    return JSONResponse(status_code=exc.status_code, content=body)


app.include_router(project_router)
app.include_router(test_router)
app.include_router(run_router)
app.include_router(prompt_router)
app.include_router(user_router)


@app.get("/")
def root():
    return {"status": "ok", "service": "TrustLLM Backend"}
