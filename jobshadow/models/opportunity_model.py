from pydantic import Field
from typing import List, Optional

from ..schemas import CamelModel, DurationLimit, OpportunityFormat, OpportunityStatus


class OpportunityCreate(CamelModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    format: OpportunityFormat
    duration_limit: DurationLimit
    organisation_id: int
    created_by_user_id: int
    host_details: Optional[str] = None
    learning_outcomes: Optional[str] = None
    learning_area_ids: List[int] = []


class OpportunityUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=1)
    format: Optional[OpportunityFormat] = None
    duration_limit: Optional[DurationLimit] = None
    status: Optional[OpportunityStatus] = None
    host_details: Optional[str] = None
    learning_outcomes: Optional[str] = None
    learning_area_ids: Optional[List[int]] = None


class ApplicationCreate(CamelModel):
    user_id: int
    opportunity_id: int
    message: Optional[str] = None


class AcceptRequest(CamelModel):
    opportunity_id: int
    user_id: int


class LearningAreaCreate(CamelModel):
    name: str = Field(min_length=1)
