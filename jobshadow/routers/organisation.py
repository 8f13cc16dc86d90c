from typing import List

from fastapi import APIRouter, Depends

from ..deps import get_storage
from ..schemas import Organisation
from ..storage.base import Storage

router = APIRouter(prefix="/api/organisations", tags=["organisations"])


@router.get("", response_model=List[Organisation])
async def list_organisations(storage: Storage = Depends(get_storage)):
    return await storage.list_organisations()
