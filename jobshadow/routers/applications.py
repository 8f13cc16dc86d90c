from typing import Optional

from fastapi import APIRouter, Depends, status

from ..deps import get_lifecycle
from ..models.opportunity_model import AcceptRequest, ApplicationCreate
from ..schemas import Application, SuccessfulApplication
from ..services.auth_service import get_current_user_id
from ..services.lifecycle import LifecycleService

router = APIRouter(prefix="/api/applications", tags=["applications"])


@router.post("", response_model=Application, status_code=status.HTTP_201_CREATED)
async def apply(data: ApplicationCreate, lifecycle: LifecycleService = Depends(get_lifecycle)):
    return await lifecycle.apply(data.user_id, data.opportunity_id, data.message)


@router.post("/accept", response_model=SuccessfulApplication, status_code=status.HTTP_201_CREATED)
async def accept(
    data: AcceptRequest,
    actor_id: Optional[int] = Depends(get_current_user_id),
    lifecycle: LifecycleService = Depends(get_lifecycle),
):
    return await lifecycle.accept(data.opportunity_id, data.user_id, actor_id=actor_id)
