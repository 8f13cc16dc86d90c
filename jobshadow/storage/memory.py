from __future__ import annotations

import asyncio
import itertools
from typing import Any, Iterable, Optional

from ..errors import Conflict, InvalidState, NotFound
from ..models.opportunity_model import ApplicationCreate, LearningAreaCreate, OpportunityCreate
from ..models.user_model import OrganisationCreate, UserCreate
from ..schemas import (
    Application,
    LearningArea,
    Opportunity,
    OpportunityFilter,
    OpportunityLearningArea,
    OpportunityStatus,
    Organisation,
    SuccessfulApplication,
    User,
)
from ..utils import utcnow
from .base import Storage


def _newest_first(rows):
    return sorted(rows, key=lambda row: (row.created_at, row.id), reverse=True)


def _ensure_open(opportunity: Opportunity) -> None:
    if opportunity.status != OpportunityStatus.OPEN:
        raise InvalidState(f"Opportunity is already {OpportunityStatus(opportunity.status).value}")


class MemStorage(Storage):
    """
    Dict-backed storage for local runs and tests.

    Writes go through one lock, which is what makes the uniqueness checks and
    the two-step accept atomic.
    """

    name = "memory"

    def __init__(self) -> None:
        super().__init__()
        self._lock = asyncio.Lock()
        self._users: dict[int, User] = {}
        self._organisations: dict[int, Organisation] = {}
        self._opportunities: dict[int, Opportunity] = {}
        self._applications: dict[int, Application] = {}
        self._successful: dict[int, SuccessfulApplication] = {}
        self._learning_areas: dict[int, LearningArea] = {}
        self._links: list[OpportunityLearningArea] = []
        self._ids = {
            kind: itertools.count(1)
            for kind in ("user", "organisation", "opportunity", "application", "learning_area")
        }

    def _next_id(self, kind: str) -> int:
        return next(self._ids[kind])

    # users

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        self.require_ready()
        return self._users.get(user_id)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        self.require_ready()
        return next((u for u in self._users.values() if u.email == email), None)

    async def list_users(self, user_ids: Iterable[int]) -> list[User]:
        self.require_ready()
        return [self._users[user_id] for user_id in set(user_ids) if user_id in self._users]

    async def create_user(self, data: UserCreate) -> User:
        self.require_ready()
        async with self._lock:
            if any(u.email == data.email for u in self._users.values()):
                raise Conflict("Email already registered")
            user = User(id=self._next_id("user"), **data.model_dump())
            self._users[user.id] = user
            return user

    async def update_user(self, user_id: int, changes: dict[str, Any]) -> Optional[User]:
        self.require_ready()
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            user = user.model_copy(update=changes)
            self._users[user_id] = user
            return user

    # organisations

    async def list_organisations(self) -> list[Organisation]:
        self.require_ready()
        return sorted(self._organisations.values(), key=lambda o: o.name)

    async def get_organisation_by_id(self, organisation_id: int) -> Optional[Organisation]:
        self.require_ready()
        return self._organisations.get(organisation_id)

    async def create_organisation(self, data: OrganisationCreate) -> Organisation:
        self.require_ready()
        async with self._lock:
            if any(o.name == data.name for o in self._organisations.values()):
                raise Conflict(f"Organisation {data.name!r} already exists")
            org = Organisation(id=self._next_id("organisation"), **data.model_dump())
            self._organisations[org.id] = org
            return org

    # opportunities

    async def get_opportunity(self, opportunity_id: int) -> Optional[Opportunity]:
        self.require_ready()
        return self._opportunities.get(opportunity_id)

    async def list_opportunity_rows(
        self,
        filters: Optional[OpportunityFilter] = None,
        created_by_user_id: Optional[int] = None,
    ) -> list[Opportunity]:
        self.require_ready()
        rows = list(self._opportunities.values())
        if filters is not None:
            if filters.organisation_id is not None:
                rows = [o for o in rows if o.organisation_id == filters.organisation_id]
            if filters.status is not None:
                rows = [o for o in rows if o.status == filters.status]
            if filters.format is not None:
                rows = [o for o in rows if o.format == filters.format]
        if created_by_user_id is not None:
            rows = [o for o in rows if o.created_by_user_id == created_by_user_id]
        return _newest_first(rows)

    async def create_opportunity(self, data: OpportunityCreate) -> Opportunity:
        self.require_ready()
        async with self._lock:
            opportunity = Opportunity(
                id=self._next_id("opportunity"),
                status=OpportunityStatus.OPEN,
                created_at=utcnow(),
                **data.model_dump(exclude={"learning_area_ids"}),
            )
            self._opportunities[opportunity.id] = opportunity
            return opportunity

    async def update_opportunity(
        self,
        opportunity_id: int,
        changes: dict[str, Any],
        status: Optional[OpportunityStatus] = None,
        learning_area_ids: Optional[Iterable[int]] = None,
    ) -> Optional[Opportunity]:
        self.require_ready()
        async with self._lock:
            opportunity = self._opportunities.get(opportunity_id)
            if opportunity is None:
                return None
            if status is not None:
                _ensure_open(opportunity)
                changes = {**changes, "status": OpportunityStatus(status)}
            if learning_area_ids is not None:
                self._replace_links(opportunity_id, learning_area_ids)
            return self._update_opportunity(opportunity_id, changes)

    def _update_opportunity(self, opportunity_id: int, changes: dict[str, Any]) -> Optional[Opportunity]:
        opportunity = self._opportunities.get(opportunity_id)
        if opportunity is None:
            return None
        opportunity = opportunity.model_copy(update=changes)
        self._opportunities[opportunity_id] = opportunity
        return opportunity

    async def change_opportunity_status(
        self, opportunity_id: int, status: OpportunityStatus
    ) -> Optional[Opportunity]:
        self.require_ready()
        async with self._lock:
            opportunity = self._opportunities.get(opportunity_id)
            if opportunity is None:
                return None
            _ensure_open(opportunity)
            return self._update_opportunity(opportunity_id, {"status": OpportunityStatus(status)})

    # applications

    async def list_applications(
        self,
        opportunity_id: Optional[int] = None,
        user_id: Optional[int] = None,
    ) -> list[Application]:
        self.require_ready()
        rows = list(self._applications.values())
        if opportunity_id is not None:
            rows = [a for a in rows if a.opportunity_id == opportunity_id]
        if user_id is not None:
            rows = [a for a in rows if a.user_id == user_id]
        return _newest_first(rows)

    async def create_application(self, data: ApplicationCreate) -> Application:
        self.require_ready()
        async with self._lock:
            duplicate = any(
                a.user_id == data.user_id and a.opportunity_id == data.opportunity_id
                for a in self._applications.values()
            )
            if duplicate:
                raise Conflict("You have already applied to this opportunity")
            application = Application(
                id=self._next_id("application"),
                created_at=utcnow(),
                **data.model_dump(),
            )
            self._applications[application.id] = application
            return application

    async def get_successful_application(self, opportunity_id: int) -> Optional[SuccessfulApplication]:
        self.require_ready()
        return self._successful.get(opportunity_id)

    async def accept_application(self, opportunity_id: int, user_id: int) -> SuccessfulApplication:
        self.require_ready()
        async with self._lock:
            opportunity = self._opportunities.get(opportunity_id)
            if opportunity is None:
                raise NotFound("Opportunity not found")
            if opportunity_id in self._successful:
                raise Conflict("An application has already been accepted for this opportunity")
            _ensure_open(opportunity)

            accepted = SuccessfulApplication(
                opportunity_id=opportunity_id,
                user_id=user_id,
                accepted_at=utcnow(),
            )
            self._successful[opportunity_id] = accepted
            self._update_opportunity(opportunity_id, {"status": OpportunityStatus.FILLED})
            return accepted

    # learning areas

    async def list_learning_areas(self) -> list[LearningArea]:
        self.require_ready()
        return sorted(self._learning_areas.values(), key=lambda a: a.name)

    async def create_learning_area(self, data: LearningAreaCreate) -> LearningArea:
        self.require_ready()
        async with self._lock:
            if any(a.name == data.name for a in self._learning_areas.values()):
                raise Conflict(f"Learning area {data.name!r} already exists")
            area = LearningArea(id=self._next_id("learning_area"), name=data.name)
            self._learning_areas[area.id] = area
            return area

    async def link_learning_area_to_opportunity(
        self, opportunity_id: int, learning_area_id: int
    ) -> OpportunityLearningArea:
        self.require_ready()
        async with self._lock:
            link = OpportunityLearningArea(opportunity_id=opportunity_id, learning_area_id=learning_area_id)
            if link in self._links:
                raise Conflict("Learning area is already linked to this opportunity")
            self._links.append(link)
            return link

    async def list_learning_areas_for_opportunity(self, opportunity_id: int) -> list[LearningArea]:
        self.require_ready()
        area_ids = {link.learning_area_id for link in self._links if link.opportunity_id == opportunity_id}
        return sorted(
            (a for a in self._learning_areas.values() if a.id in area_ids),
            key=lambda a: a.name,
        )

    async def set_opportunity_learning_areas(
        self, opportunity_id: int, learning_area_ids: Iterable[int]
    ) -> list[LearningArea]:
        self.require_ready()
        async with self._lock:
            self._replace_links(opportunity_id, learning_area_ids)
        return await self.list_learning_areas_for_opportunity(opportunity_id)

    def _replace_links(self, opportunity_id: int, learning_area_ids: Iterable[int]) -> None:
        self._links = [link for link in self._links if link.opportunity_id != opportunity_id]
        for area_id in dict.fromkeys(learning_area_ids):
            self._links.append(OpportunityLearningArea(opportunity_id=opportunity_id, learning_area_id=area_id))
