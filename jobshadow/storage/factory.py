from ..config import Settings
from .base import Storage
from .memory import MemStorage
from .sql import SqlStorage


def build_storage(settings: Settings) -> Storage:
    """Pick the storage backend named by STORAGE_BACKEND."""
    backend = settings.STORAGE_BACKEND.strip().lower()
    if backend == "memory":
        return MemStorage()
    if backend == "sql":
        return SqlStorage(settings.DATABASE_URL, echo=settings.DB_ECHO)
    raise ValueError(f"Unknown STORAGE_BACKEND {settings.STORAGE_BACKEND!r} (expected 'memory' or 'sql')")
