from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..deps import get_storage
from ..models.opportunity_model import OpportunityCreate, OpportunityUpdate
from ..schemas import (
    ApplicationDetail,
    OpportunityDetail,
    OpportunityFilter,
    OpportunityFormat,
    OpportunityStatus,
)
from ..services import opportunity_service
from ..services.auth_service import get_current_user_id
from ..storage.base import Storage

router = APIRouter(
    prefix="/api/opportunities",
    tags=["opportunities"]
)


@router.get("", response_model=List[OpportunityDetail])
async def list_opportunities(
    organisation_id: Optional[int] = Query(default=None, alias="organisationId"),
    opportunity_status: Optional[OpportunityStatus] = Query(default=None, alias="status"),
    opportunity_format: Optional[OpportunityFormat] = Query(default=None, alias="format"),
    storage: Storage = Depends(get_storage),
):
    filters = OpportunityFilter(
        organisation_id=organisation_id,
        status=opportunity_status,
        format=opportunity_format,
    )
    return await storage.list_opportunities(filters)


@router.get("/{opportunity_id}", response_model=OpportunityDetail)
async def get_opportunity(opportunity_id: int, storage: Storage = Depends(get_storage)):
    opportunity = await storage.get_opportunity_by_id(opportunity_id)
    if not opportunity:
        raise HTTPException(status_code=404, detail="Opportunity not found")
    return opportunity


@router.post("", response_model=OpportunityDetail, status_code=status.HTTP_201_CREATED)
async def create_opportunity(data: OpportunityCreate, storage: Storage = Depends(get_storage)):
    return await opportunity_service.create_opportunity(storage, data)


@router.put("/{opportunity_id}", response_model=OpportunityDetail)
async def update_opportunity(
    opportunity_id: int,
    data: OpportunityUpdate,
    actor_id: Optional[int] = Depends(get_current_user_id),
    storage: Storage = Depends(get_storage),
):
    return await opportunity_service.update_opportunity(storage, opportunity_id, data, actor_id=actor_id)


@router.get("/{opportunity_id}/applications", response_model=List[ApplicationDetail])
async def list_applications(opportunity_id: int, storage: Storage = Depends(get_storage)):
    return await storage.list_applications_by_opportunity(opportunity_id)
