from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ..deps import get_storage
from ..models.user_model import GoogleSignIn, UserCreate
from ..schemas import User
from ..services.auth_service import google_sign_in, register_user
from ..storage.base import Storage

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", response_model=User, status_code=status.HTTP_201_CREATED)
async def register(data: UserCreate, response: Response, storage: Storage = Depends(get_storage)):
    user, created = await register_user(storage, data)
    if not created:
        response.status_code = status.HTTP_200_OK
    return user


@router.post("/google-signin", response_model=User)
async def google_signin(profile: GoogleSignIn, storage: Storage = Depends(get_storage)):
    return await google_sign_in(storage, profile)


@router.get("/me", response_model=User)
async def me(
    user_id: Optional[int] = Query(default=None, alias="userId"),
    storage: Storage = Depends(get_storage),
):
    if user_id is None:
        raise HTTPException(status_code=401, detail="Unauthorized")

    user = await storage.get_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user
