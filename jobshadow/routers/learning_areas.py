from typing import List

from fastapi import APIRouter, Depends

from ..deps import get_storage
from ..schemas import LearningArea
from ..storage.base import Storage

router = APIRouter(prefix="/api/learning-areas", tags=["learning-areas"])


@router.get("", response_model=List[LearningArea])
async def list_learning_areas(storage: Storage = Depends(get_storage)):
    return await storage.list_learning_areas()
