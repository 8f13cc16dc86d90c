from sqlmodel import SQLModel, Field
from datetime import datetime
from typing import Optional
from sqlalchemy import DateTime, UniqueConstraint
from ..utils import utcnow


class Organisation(SQLModel, table=True):
    __tablename__ = "organisations"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True)
    short_code: str = Field(max_length=10)


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)
    name: str
    organisation_id: Optional[int] = Field(default=None, foreign_key="organisations.id")
    # current_role is reserved in postgres
    role_title: Optional[str] = None
    looking_for: Optional[str] = None
    picture_url: Optional[str] = None
    is_authenticated: bool = True


class Opportunity(SQLModel, table=True):
    __tablename__ = "opportunities"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: str
    format: str
    duration_limit: str
    status: str = Field(default="Open", index=True)
    organisation_id: int = Field(foreign_key="organisations.id", index=True)
    created_by_user_id: int = Field(foreign_key="users.id", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    host_details: Optional[str] = None
    learning_outcomes: Optional[str] = None


class Application(SQLModel, table=True):
    __tablename__ = "applications"
    __table_args__ = (UniqueConstraint("user_id", "opportunity_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    opportunity_id: int = Field(foreign_key="opportunities.id", index=True)
    message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class SuccessfulApplication(SQLModel, table=True):
    __tablename__ = "successful_applications"

    opportunity_id: int = Field(foreign_key="opportunities.id", primary_key=True)
    user_id: int = Field(foreign_key="users.id")
    accepted_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class LearningArea(SQLModel, table=True):
    __tablename__ = "learning_areas"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True)


class OpportunityLearningArea(SQLModel, table=True):
    __tablename__ = "opportunity_learning_areas"

    opportunity_id: int = Field(foreign_key="opportunities.id", primary_key=True)
    learning_area_id: int = Field(foreign_key="learning_areas.id", primary_key=True)
