from pydantic import BaseModel
import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    APP_NAME: str = os.getenv("APP_NAME", "Job Shadowing API")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_JSON: bool = _flag("LOG_JSON")
    CORS_ORIGINS: list[str] = ["*"]

    # "memory" or "sql"
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "sql")
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./jobshadow.db")
    DB_ECHO: bool = _flag("DB_ECHO")
    SEED_SAMPLE_DATA: bool = _flag("SEED_SAMPLE_DATA", "true")

    # exposed to the browser client through /api/config
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_ANON_KEY: str = os.getenv("SUPABASE_ANON_KEY", "")


settings = Settings()
