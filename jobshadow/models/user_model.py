from pydantic import EmailStr, Field
from typing import Optional

from ..schemas import CamelModel


class UserCreate(CamelModel):
    email: EmailStr
    name: str = Field(min_length=1)
    organisation_id: Optional[int] = None
    current_role: Optional[str] = None
    looking_for: Optional[str] = None
    picture_url: Optional[str] = None
    is_authenticated: bool = True


class UserUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    organisation_id: Optional[int] = None
    current_role: Optional[str] = None
    looking_for: Optional[str] = None
    picture_url: Optional[str] = None
    is_authenticated: Optional[bool] = None


class GoogleSignIn(CamelModel):
    email: EmailStr
    name: str = Field(min_length=1)
    picture_url: Optional[str] = None


class OrganisationCreate(CamelModel):
    name: str = Field(min_length=1)
    short_code: str = Field(min_length=1, max_length=10)
