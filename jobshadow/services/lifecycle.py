from __future__ import annotations

from typing import Optional

import structlog

from ..errors import Conflict, Forbidden, InvalidState, NotFound, ValidationFailure
from ..models.opportunity_model import ApplicationCreate
from ..schemas import Application, Opportunity, OpportunityStatus, SuccessfulApplication
from ..storage.base import Storage

log = structlog.get_logger(__name__)


def ensure_creator(opportunity: Opportunity, actor_id: Optional[int]) -> None:
    """Only the creator may manage an opportunity; no actor means unchecked."""
    if actor_id is not None and actor_id != opportunity.created_by_user_id:
        raise Forbidden("Only the creator of this opportunity can do that")


def ensure_open(opportunity: Opportunity) -> None:
    if opportunity.status != OpportunityStatus.OPEN:
        raise InvalidState(
            f"Opportunity is {OpportunityStatus(opportunity.status).value} and no longer accepts changes"
        )


def status_transition(opportunity: Opportunity, new_status: OpportunityStatus) -> Optional[OpportunityStatus]:
    """The status to move to, or None when it is unchanged."""
    new_status = OpportunityStatus(new_status)
    if new_status == opportunity.status:
        return None
    if new_status == OpportunityStatus.OPEN:
        raise ValidationFailure(
            "Opportunities cannot be reopened",
            errors=[{"field": "status", "message": "must be Closed or Filled"}],
        )
    ensure_open(opportunity)
    return new_status


class LifecycleService:
    """
    State changes of opportunities and applications.

    Open is the only non-terminal status: applying, accepting and closing all
    require it. The storage layer repeats the uniqueness and status checks
    inside its own atomic unit, so a request that loses a race still fails
    with Conflict instead of writing twice.
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    async def _load(self, opportunity_id: int) -> Opportunity:
        opportunity = await self.storage.get_opportunity(opportunity_id)
        if opportunity is None:
            raise NotFound("Opportunity not found")
        return opportunity

    async def apply(self, user_id: int, opportunity_id: int, message: Optional[str] = None) -> Application:
        opportunity = await self._load(opportunity_id)
        if await self.storage.get_user_by_id(user_id) is None:
            raise NotFound("User not found")
        if opportunity.status != OpportunityStatus.OPEN:
            raise InvalidState("Cannot apply to a non-open opportunity")

        existing = await self.storage.list_applications(opportunity_id=opportunity_id)
        if any(app.user_id == user_id for app in existing):
            raise Conflict("You have already applied to this opportunity")

        application = await self.storage.create_application(
            ApplicationCreate(user_id=user_id, opportunity_id=opportunity_id, message=message)
        )
        log.info("application_created", application_id=application.id,
                 opportunity_id=opportunity_id, user_id=user_id)
        return application

    async def accept(
        self, opportunity_id: int, user_id: int, actor_id: Optional[int] = None
    ) -> SuccessfulApplication:
        opportunity = await self._load(opportunity_id)
        ensure_creator(opportunity, actor_id)

        if await self.storage.get_successful_application(opportunity_id) is not None:
            raise Conflict("An application has already been accepted for this opportunity")
        ensure_open(opportunity)

        applications = await self.storage.list_applications(opportunity_id=opportunity_id, user_id=user_id)
        if not applications:
            raise NotFound("This user has not applied to the opportunity")

        accepted = await self.storage.accept_application(opportunity_id, user_id)
        log.info("application_accepted", opportunity_id=opportunity_id, user_id=user_id)
        return accepted

    async def change_status(
        self,
        opportunity_id: int,
        new_status: OpportunityStatus,
        actor_id: Optional[int] = None,
    ) -> Opportunity:
        opportunity = await self._load(opportunity_id)
        ensure_creator(opportunity, actor_id)

        new_status = status_transition(opportunity, new_status)
        if new_status is None:
            return opportunity

        updated = await self.storage.change_opportunity_status(opportunity_id, new_status)
        if updated is None:
            raise NotFound("Opportunity not found")
        log.info("opportunity_status_changed", opportunity_id=opportunity_id,
                 status=new_status.value)
        return updated
