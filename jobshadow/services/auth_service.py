from __future__ import annotations

from typing import Optional

import structlog
from fastapi import Header

from ..errors import Conflict, ValidationFailure
from ..models.user_model import GoogleSignIn, UserCreate, UserUpdate
from ..schemas import User
from ..storage.base import Storage

log = structlog.get_logger(__name__)


def get_current_user_id(x_user_id: Optional[int] = Header(default=None)) -> Optional[int]:
    """
    The authenticated user id, as forwarded by the identity layer in front of
    the API. None when the request carries no identity.
    """
    return x_user_id


async def register_user(storage: Storage, data: UserCreate) -> tuple[User, bool]:
    """Create-or-fetch by email. The flag is True when a user was created."""
    existing = await storage.get_user_by_email(data.email)
    if existing:
        return existing, False

    if data.organisation_id is not None and await storage.get_organisation_by_id(data.organisation_id) is None:
        raise ValidationFailure(
            "Invalid user data",
            errors=[{"field": "organisationId", "message": "organisation does not exist"}],
        )

    try:
        user = await storage.create_user(data)
    except Conflict:
        # lost a race with another registration for the same email
        existing = await storage.get_user_by_email(data.email)
        if existing is None:
            raise
        return existing, False

    log.info("user_registered", user_id=user.id)
    return user, True


async def google_sign_in(storage: Storage, profile: GoogleSignIn) -> User:
    user = await storage.get_user_by_email(profile.email)
    if user is None:
        # organisation is picked on the first profile visit
        user, _ = await register_user(
            storage,
            UserCreate(email=profile.email, name=profile.name, picture_url=profile.picture_url),
        )
        return user

    changes = {}
    if profile.picture_url and user.picture_url != profile.picture_url:
        changes["picture_url"] = profile.picture_url
    if user.name != profile.name:
        changes["name"] = profile.name

    if changes:
        updated = await storage.update_user(user.id, changes)
        if updated:
            user = updated
            log.info("user_profile_synced", user_id=user.id, fields=sorted(changes))
    return user


async def update_profile(storage: Storage, user_id: int, data: UserUpdate) -> Optional[User]:
    changes = data.model_dump(exclude_unset=True)
    # name and the auth flag cannot be cleared
    for field in ("name", "is_authenticated"):
        if changes.get(field, "") is None:
            changes.pop(field)

    if "organisation_id" in changes and changes["organisation_id"] is None:
        # once set, the organisation can be changed but not removed
        user = await storage.get_user_by_id(user_id)
        if user is None:
            return None
        if user.organisation_id is not None:
            raise ValidationFailure(
                "Invalid user data",
                errors=[{"field": "organisationId", "message": "organisation cannot be removed"}],
            )
        changes.pop("organisation_id")

    organisation_id = changes.get("organisation_id")
    if organisation_id is not None and await storage.get_organisation_by_id(organisation_id) is None:
        raise ValidationFailure(
            "Invalid user data",
            errors=[{"field": "organisationId", "message": "organisation does not exist"}],
        )

    if not changes:
        return await storage.get_user_by_id(user_id)
    return await storage.update_user(user_id, changes)
