import os
from dotenv import load_dotenv

load_dotenv()

# --- DATABASE ---
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./trustllm.db")

# --- AUTH ---
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

# --- PROVIDER KEYS (server defaults, user keys take precedence) ---
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")

# Model used by the LLM judge. Empty string disables judging.
JUDGE_MODEL = os.getenv("JUDGE_MODEL", "gemini-2.0-flash")

# --- RUNNER ---
RUN_MAX_WORKERS = int(os.getenv("RUN_MAX_WORKERS", "4"))
PROVIDER_MAX_RETRIES = int(os.getenv("PROVIDER_MAX_RETRIES", "3"))
PROVIDER_RETRY_BACKOFF = float(os.getenv("PROVIDER_RETRY_BACKOFF", "5"))

# --- ANALYTICS ---
WORST_FAILING_LIMIT = int(os.getenv("WORST_FAILING_LIMIT", "5"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]
