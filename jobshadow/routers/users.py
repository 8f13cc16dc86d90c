from fastapi import APIRouter, Depends, HTTPException
from typing import List

from ..deps import get_storage
from ..models.user_model import UserUpdate
from ..schemas import ApplicationDetail, OpportunityDetail, User
from ..services.auth_service import update_profile
from ..storage.base import Storage

router = APIRouter(prefix="/api/users", tags=["users"])


@router.put("/{user_id}", response_model=User)
async def update_user(user_id: int, data: UserUpdate, storage: Storage = Depends(get_storage)):
    user = await update_profile(storage, user_id, data)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/{user_id}/opportunities", response_model=List[OpportunityDetail])
async def list_user_opportunities(user_id: int, storage: Storage = Depends(get_storage)):
    return await storage.list_opportunities_by_creator(user_id)


@router.get("/{user_id}/applications", response_model=List[ApplicationDetail])
async def list_user_applications(user_id: int, storage: Storage = Depends(get_storage)):
    return await storage.list_applications_by_user(user_id)
