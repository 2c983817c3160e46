import os
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseModel):
    practice_api_url: str = os.getenv("PRACTICE_API_URL", "http://localhost:5000")
    practice_api_token: str | None = os.getenv("PRACTICE_API_TOKEN")
    request_timeout_seconds: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "10"))
    default_duration_seconds: int = int(os.getenv("DEFAULT_DURATION_SECONDS", "3600"))
    tick_interval_seconds: float = float(os.getenv("TICK_INTERVAL_SECONDS", "1.0"))
    submit_concurrency: int = int(os.getenv("SUBMIT_CONCURRENCY", "8"))
    attempt_cache_dir: str = os.getenv("ATTEMPT_CACHE_DIR", ".attempt_cache")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()
