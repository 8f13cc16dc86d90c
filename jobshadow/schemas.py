from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Annotated, List, Optional
from datetime import datetime
from enum import Enum

from .utils import as_utc

UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class OpportunityFormat(str, Enum):
    IN_PERSON = "In-Person"
    ONLINE = "Online"
    HYBRID = "Hybrid"


class DurationLimit(str, Enum):
    ONE_HOUR = "1 Hour"
    HALF_DAY = "Half-Day"
    ONE_DAY = "1 Day"
    TWO_HALF_DAYS = "2 Half-Days"
    TWO_DAYS = "2 Days"


class OpportunityStatus(str, Enum):
    OPEN = "Open"
    CLOSED = "Closed"
    FILLED = "Filled"


class Organisation(CamelModel):
    id: int
    name: str
    short_code: str


class User(CamelModel):
    id: int
    email: str
    name: str
    organisation_id: Optional[int] = None
    current_role: Optional[str] = None
    looking_for: Optional[str] = None
    picture_url: Optional[str] = None
    is_authenticated: bool = True


class LearningArea(CamelModel):
    id: int
    name: str


class OpportunityLearningArea(CamelModel):
    opportunity_id: int
    learning_area_id: int


class Opportunity(CamelModel):
    id: int
    title: str
    description: str
    format: OpportunityFormat
    duration_limit: DurationLimit
    status: OpportunityStatus = OpportunityStatus.OPEN
    organisation_id: int
    created_by_user_id: int
    created_at: UtcDatetime
    host_details: Optional[str] = None
    learning_outcomes: Optional[str] = None


class Application(CamelModel):
    id: int
    user_id: int
    opportunity_id: int
    message: Optional[str] = None
    created_at: UtcDatetime


class SuccessfulApplication(CamelModel):
    opportunity_id: int
    user_id: int
    accepted_at: UtcDatetime


class OpportunityFilter(CamelModel):
    organisation_id: Optional[int] = None
    status: Optional[OpportunityStatus] = None
    format: Optional[OpportunityFormat] = None


# Enriched read shapes

class OpportunitySummary(Opportunity):
    organisation: Optional[Organisation] = None
    creator: Optional[User] = None
    learning_areas: List[LearningArea] = []


class ApplicationWithUser(Application):
    user: Optional[User] = None


class OpportunityDetail(OpportunitySummary):
    applications: List[ApplicationWithUser] = []
    application_count: int = 0
    successful_applicant: Optional[User] = None


class ApplicationDetail(Application):
    user: Optional[User] = None
    opportunity: Optional[OpportunitySummary] = None
