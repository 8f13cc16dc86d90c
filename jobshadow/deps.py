from fastapi import Depends, Request

from .services.lifecycle import LifecycleService
from .storage.base import Storage


def get_storage(request: Request) -> Storage:
    storage: Storage = request.app.state.storage
    storage.require_ready()
    return storage


def get_lifecycle(storage: Storage = Depends(get_storage)) -> LifecycleService:
    return LifecycleService(storage)
