from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

from ..errors import StorageFailure
from ..models.opportunity_model import ApplicationCreate, LearningAreaCreate, OpportunityCreate
from ..models.user_model import OrganisationCreate, UserCreate
from ..schemas import (
    Application,
    ApplicationDetail,
    ApplicationWithUser,
    LearningArea,
    Opportunity,
    OpportunityDetail,
    OpportunityFilter,
    OpportunityLearningArea,
    OpportunityStatus,
    OpportunitySummary,
    Organisation,
    SuccessfulApplication,
    User,
)


class Storage(ABC):
    """
    Data access for the marketplace.

    Every method is a coroutine. Rows that do not exist come back as None or
    as an empty list. Uniqueness violations raise Conflict; anything the
    backend cannot do raises StorageFailure.

    Backends implement the plain row operations; the enriched opportunity and
    application shapes are assembled here so every backend returns the same
    thing.
    """

    name = "base"

    def __init__(self) -> None:
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    def require_ready(self) -> None:
        if not self._ready:
            raise StorageFailure(f"{self.name} storage is not connected")

    async def connect(self) -> None:
        self._ready = True

    async def close(self) -> None:
        self._ready = False

    # users

    @abstractmethod
    async def get_user_by_id(self, user_id: int) -> Optional[User]: ...

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[User]: ...

    @abstractmethod
    async def list_users(self, user_ids: Iterable[int]) -> list[User]:
        """The users among user_ids that exist, in no particular order."""

    @abstractmethod
    async def create_user(self, data: UserCreate) -> User: ...

    @abstractmethod
    async def update_user(self, user_id: int, changes: dict[str, Any]) -> Optional[User]: ...

    # organisations

    @abstractmethod
    async def list_organisations(self) -> list[Organisation]: ...

    @abstractmethod
    async def get_organisation_by_id(self, organisation_id: int) -> Optional[Organisation]: ...

    @abstractmethod
    async def create_organisation(self, data: OrganisationCreate) -> Organisation: ...

    # opportunities

    @abstractmethod
    async def get_opportunity(self, opportunity_id: int) -> Optional[Opportunity]: ...

    @abstractmethod
    async def list_opportunity_rows(
        self,
        filters: Optional[OpportunityFilter] = None,
        created_by_user_id: Optional[int] = None,
    ) -> list[Opportunity]:
        """Plain rows, newest first."""

    @abstractmethod
    async def create_opportunity(self, data: OpportunityCreate) -> Opportunity: ...

    @abstractmethod
    async def update_opportunity(
        self,
        opportunity_id: int,
        changes: dict[str, Any],
        status: Optional[OpportunityStatus] = None,
        learning_area_ids: Optional[Iterable[int]] = None,
    ) -> Optional[Opportunity]:
        """
        Apply field changes, an optional Open -> status transition and an
        optional tag replacement as one unit. InvalidState, with nothing
        written, if a status is given and the opportunity is not Open.
        """

    @abstractmethod
    async def change_opportunity_status(
        self, opportunity_id: int, status: OpportunityStatus
    ) -> Optional[Opportunity]:
        """Move an Open opportunity to status; InvalidState if it is not Open."""

    # applications

    @abstractmethod
    async def list_applications(
        self,
        opportunity_id: Optional[int] = None,
        user_id: Optional[int] = None,
    ) -> list[Application]:
        """Plain rows, newest first."""

    @abstractmethod
    async def create_application(self, data: ApplicationCreate) -> Application: ...

    @abstractmethod
    async def get_successful_application(self, opportunity_id: int) -> Optional[SuccessfulApplication]: ...

    @abstractmethod
    async def accept_application(self, opportunity_id: int, user_id: int) -> SuccessfulApplication:
        """
        Record the accepted applicant and mark the opportunity Filled as one
        unit. Conflict if the opportunity already has an accepted applicant,
        InvalidState if it is not Open, NotFound if it does not exist.
        """

    # learning areas

    @abstractmethod
    async def list_learning_areas(self) -> list[LearningArea]: ...

    @abstractmethod
    async def create_learning_area(self, data: LearningAreaCreate) -> LearningArea: ...

    @abstractmethod
    async def link_learning_area_to_opportunity(
        self, opportunity_id: int, learning_area_id: int
    ) -> OpportunityLearningArea: ...

    @abstractmethod
    async def list_learning_areas_for_opportunity(self, opportunity_id: int) -> list[LearningArea]: ...

    @abstractmethod
    async def set_opportunity_learning_areas(
        self, opportunity_id: int, learning_area_ids: Iterable[int]
    ) -> list[LearningArea]: ...

    # enriched reads

    async def list_opportunities(self, filters: Optional[OpportunityFilter] = None) -> list[OpportunityDetail]:
        rows = await self.list_opportunity_rows(filters)
        return [await self._assemble_detail(row) for row in rows]

    async def list_opportunities_by_creator(self, user_id: int) -> list[OpportunityDetail]:
        rows = await self.list_opportunity_rows(created_by_user_id=user_id)
        return [await self._assemble_detail(row) for row in rows]

    async def get_opportunity_by_id(self, opportunity_id: int) -> Optional[OpportunityDetail]:
        row = await self.get_opportunity(opportunity_id)
        if row is None:
            return None
        return await self._assemble_detail(row)

    async def list_applications_by_opportunity(self, opportunity_id: int) -> list[ApplicationDetail]:
        rows = await self.list_applications(opportunity_id=opportunity_id)
        return await self._assemble_applications(rows)

    async def list_applications_by_user(self, user_id: int) -> list[ApplicationDetail]:
        rows = await self.list_applications(user_id=user_id)
        return await self._assemble_applications(rows)

    async def _users_by_id(self, user_ids: Iterable[Optional[int]]) -> dict[int, User]:
        ids = {user_id for user_id in user_ids if user_id is not None}
        return {user.id: user for user in await self.list_users(ids)}

    async def _related(self, opportunity: Opportunity, users: dict[int, User]) -> dict[str, Any]:
        return {
            "organisation": await self.get_organisation_by_id(opportunity.organisation_id),
            "creator": users.get(opportunity.created_by_user_id),
            "learning_areas": await self.list_learning_areas_for_opportunity(opportunity.id),
        }

    async def _assemble_detail(self, opportunity: Opportunity) -> OpportunityDetail:
        rows = await self.list_applications(opportunity_id=opportunity.id)
        accepted = await self.get_successful_application(opportunity.id)
        # creator, applicants and the accepted applicant in one lookup
        users = await self._users_by_id(
            [opportunity.created_by_user_id, accepted.user_id if accepted else None]
            + [app.user_id for app in rows]
        )

        applications = [ApplicationWithUser(**app.model_dump(), user=users.get(app.user_id)) for app in rows]
        return OpportunityDetail(
            **opportunity.model_dump(),
            **await self._related(opportunity, users),
            applications=applications,
            application_count=len(applications),
            successful_applicant=users.get(accepted.user_id) if accepted else None,
        )

    async def _assemble_applications(self, rows: list[Application]) -> list[ApplicationDetail]:
        opportunities: dict[int, Optional[Opportunity]] = {}
        for app in rows:
            if app.opportunity_id not in opportunities:
                opportunities[app.opportunity_id] = await self.get_opportunity(app.opportunity_id)

        users = await self._users_by_id(
            [app.user_id for app in rows]
            + [o.created_by_user_id for o in opportunities.values() if o is not None]
        )
        summaries = {
            opportunity_id: (
                OpportunitySummary(**opportunity.model_dump(), **await self._related(opportunity, users))
                if opportunity is not None
                else None
            )
            for opportunity_id, opportunity in opportunities.items()
        }
        return [
            ApplicationDetail(
                **app.model_dump(),
                user=users.get(app.user_id),
                opportunity=summaries[app.opportunity_id],
            )
            for app in rows
        ]
