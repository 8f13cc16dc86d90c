from __future__ import annotations

from typing import Iterable, Optional

import structlog

from ..errors import NotFound, ValidationFailure
from ..models.opportunity_model import OpportunityCreate, OpportunityUpdate
from ..schemas import OpportunityDetail
from ..storage.base import Storage
from .lifecycle import ensure_creator, status_transition

log = structlog.get_logger(__name__)


async def _check_learning_areas(storage: Storage, learning_area_ids: Iterable[int]) -> list[int]:
    ids = list(dict.fromkeys(learning_area_ids))
    known = {area.id for area in await storage.list_learning_areas()}
    unknown = [area_id for area_id in ids if area_id not in known]
    if unknown:
        raise ValidationFailure(
            "Invalid opportunity data",
            errors=[{"field": "learningAreaIds", "message": f"unknown learning area ids {unknown}"}],
        )
    return ids


async def create_opportunity(storage: Storage, data: OpportunityCreate) -> OpportunityDetail:
    creator = await storage.get_user_by_id(data.created_by_user_id)
    if creator is None:
        raise ValidationFailure(
            "Invalid opportunity data",
            errors=[{"field": "createdByUserId", "message": "user does not exist"}],
        )
    if creator.organisation_id is None:
        raise ValidationFailure(
            "Complete your profile with an organisation before creating opportunities",
            errors=[{"field": "createdByUserId", "message": "user has no organisation"}],
        )
    if await storage.get_organisation_by_id(data.organisation_id) is None:
        raise ValidationFailure(
            "Invalid opportunity data",
            errors=[{"field": "organisationId", "message": "organisation does not exist"}],
        )
    area_ids = await _check_learning_areas(storage, data.learning_area_ids)

    opportunity = await storage.create_opportunity(data)
    for area_id in area_ids:
        await storage.link_learning_area_to_opportunity(opportunity.id, area_id)

    log.info("opportunity_created", opportunity_id=opportunity.id,
             organisation_id=opportunity.organisation_id, user_id=creator.id)
    return await storage.get_opportunity_by_id(opportunity.id)


async def update_opportunity(
    storage: Storage,
    opportunity_id: int,
    data: OpportunityUpdate,
    actor_id: Optional[int] = None,
) -> OpportunityDetail:
    """Apply a partial edit; a status change goes through the lifecycle rules."""
    opportunity = await storage.get_opportunity(opportunity_id)
    if opportunity is None:
        raise NotFound("Opportunity not found")
    ensure_creator(opportunity, actor_id)

    changes = data.model_dump(exclude_unset=True)
    status = changes.pop("status", None)
    area_ids = changes.pop("learning_area_ids", None)
    # explicit nulls only clear the optional text fields
    changes = {
        field: value
        for field, value in changes.items()
        if value is not None or field in ("host_details", "learning_outcomes")
    }

    if area_ids is not None:
        area_ids = await _check_learning_areas(storage, area_ids)
    if status is not None:
        status = status_transition(opportunity, status)

    # status, fields and tags are written together or not at all
    updated = await storage.update_opportunity(
        opportunity_id, changes, status=status, learning_area_ids=area_ids
    )
    if updated is None:
        raise NotFound("Opportunity not found")
    if status is not None:
        log.info("opportunity_status_changed", opportunity_id=opportunity_id, status=status.value)

    return await storage.get_opportunity_by_id(opportunity_id)
