from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import SQLModel, col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..db import create_engine, create_sessionmaker
from ..errors import Conflict, InvalidState, NotFound, StorageFailure
from ..models import model as tables
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
from ..utils import rename_keys, utcnow
from .base import Storage

log = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

# domain attribute -> column, where they differ
USER_COLUMNS = {"current_role": "role_title"}
USER_FIELDS = {column: field for field, column in USER_COLUMNS.items()}


def _to_domain(model: Type[T], row: SQLModel, renames: Optional[dict[str, str]] = None) -> T:
    data = row.model_dump()
    if renames:
        data = rename_keys(data, renames)
    return model.model_validate(data)


def _user(row: tables.User) -> User:
    return _to_domain(User, row, USER_FIELDS)


def _plain(changes: dict[str, Any]) -> dict[str, Any]:
    # enum members are stored by value
    return {key: getattr(value, "value", value) for key, value in changes.items()}


class SqlStorage(Storage):
    """Relational storage through SQLModel on an async SQLAlchemy engine."""

    name = "sql"

    def __init__(self, database_url: str, echo: bool = False) -> None:
        super().__init__()
        self.database_url = database_url
        self.echo = echo
        self._engine = None
        self._sessions = None

    async def connect(self) -> None:
        if self._ready:
            return
        self._engine = create_engine(self.database_url, echo=self.echo)
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
        except SQLAlchemyError as exc:
            await self._engine.dispose()
            raise StorageFailure(f"Could not connect to the database: {exc}") from exc
        self._sessions = create_sessionmaker(self._engine)
        await super().connect()
        log.info("storage_connected", backend=self.name)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._sessions = None
        await super().close()

    @asynccontextmanager
    async def _session(self, conflict: Optional[str] = None) -> AsyncIterator[AsyncSession]:
        """
        Yield a session; IntegrityError becomes Conflict(conflict) when a
        message is given, every other database error becomes StorageFailure.
        """
        self.require_ready()
        async with self._sessions() as session:
            try:
                yield session
            except IntegrityError as exc:
                await session.rollback()
                if conflict is None:
                    raise StorageFailure(f"Integrity error: {exc.orig}") from exc
                raise Conflict(conflict) from exc
            except SQLAlchemyError as exc:
                await session.rollback()
                log.error("storage_failure", error=str(exc))
                raise StorageFailure("Database error") from exc

    async def _insert(self, row: SQLModel, conflict: Optional[str] = None) -> SQLModel:
        async with self._session(conflict) as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return row

    # users

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        async with self._session() as session:
            row = await session.get(tables.User, user_id)
            return _user(row) if row else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        async with self._session() as session:
            result = await session.exec(select(tables.User).where(tables.User.email == email))
            row = result.first()
            return _user(row) if row else None

    async def list_users(self, user_ids: Iterable[int]) -> list[User]:
        ids = set(user_ids)
        if not ids:
            return []
        async with self._session() as session:
            result = await session.exec(select(tables.User).where(col(tables.User.id).in_(ids)))
            return [_user(row) for row in result.all()]

    async def create_user(self, data: UserCreate) -> User:
        row = tables.User(**rename_keys(data.model_dump(), USER_COLUMNS))
        return _user(await self._insert(row, conflict="Email already registered"))

    async def update_user(self, user_id: int, changes: dict[str, Any]) -> Optional[User]:
        async with self._session(conflict="Email already registered") as session:
            row = await session.get(tables.User, user_id)
            if not row:
                return None
            for column, value in rename_keys(changes, USER_COLUMNS).items():
                setattr(row, column, value)
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return _user(row)

    # organisations

    async def list_organisations(self) -> list[Organisation]:
        async with self._session() as session:
            result = await session.exec(select(tables.Organisation).order_by(tables.Organisation.name))
            return [_to_domain(Organisation, row) for row in result.all()]

    async def get_organisation_by_id(self, organisation_id: int) -> Optional[Organisation]:
        async with self._session() as session:
            row = await session.get(tables.Organisation, organisation_id)
            return _to_domain(Organisation, row) if row else None

    async def create_organisation(self, data: OrganisationCreate) -> Organisation:
        row = tables.Organisation(**data.model_dump())
        row = await self._insert(row, conflict=f"Organisation {data.name!r} already exists")
        return _to_domain(Organisation, row)

    # opportunities

    async def get_opportunity(self, opportunity_id: int) -> Optional[Opportunity]:
        async with self._session() as session:
            row = await session.get(tables.Opportunity, opportunity_id)
            return _to_domain(Opportunity, row) if row else None

    async def list_opportunity_rows(
        self,
        filters: Optional[OpportunityFilter] = None,
        created_by_user_id: Optional[int] = None,
    ) -> list[Opportunity]:
        stmt = select(tables.Opportunity)
        if filters is not None:
            if filters.organisation_id is not None:
                stmt = stmt.where(tables.Opportunity.organisation_id == filters.organisation_id)
            if filters.status is not None:
                stmt = stmt.where(tables.Opportunity.status == filters.status.value)
            if filters.format is not None:
                stmt = stmt.where(tables.Opportunity.format == filters.format.value)
        if created_by_user_id is not None:
            stmt = stmt.where(tables.Opportunity.created_by_user_id == created_by_user_id)
        stmt = stmt.order_by(col(tables.Opportunity.created_at).desc(), col(tables.Opportunity.id).desc())

        async with self._session() as session:
            result = await session.exec(stmt)
            return [_to_domain(Opportunity, row) for row in result.all()]

    async def create_opportunity(self, data: OpportunityCreate) -> Opportunity:
        row = tables.Opportunity(
            **_plain(data.model_dump(exclude={"learning_area_ids"})),
            status=OpportunityStatus.OPEN.value,
            created_at=utcnow(),
        )
        return _to_domain(Opportunity, await self._insert(row))

    async def update_opportunity(
        self,
        opportunity_id: int,
        changes: dict[str, Any],
        status: Optional[OpportunityStatus] = None,
        learning_area_ids: Optional[Iterable[int]] = None,
    ) -> Optional[Opportunity]:
        async with self._session() as session:
            if status is not None and not await self._leave_open(session, opportunity_id, status):
                row = await session.get(tables.Opportunity, opportunity_id)
                if not row:
                    return None
                raise InvalidState(f"Opportunity is already {row.status}")
            row = await session.get(tables.Opportunity, opportunity_id)
            if not row:
                return None
            for field, value in _plain(changes).items():
                setattr(row, field, value)
            session.add(row)
            if learning_area_ids is not None:
                await self._replace_links(session, opportunity_id, learning_area_ids)
            await session.commit()
            await session.refresh(row)
            return _to_domain(Opportunity, row)

    async def _leave_open(self, session: AsyncSession, opportunity_id: int, status: OpportunityStatus) -> bool:
        """
        Move an Open opportunity to status in one conditional UPDATE.

        The write takes the database's write lock, so of two racing
        transitions only the first matches the Open row; the other sees no
        row and must not write anything else.
        """
        result = await session.exec(
            update(tables.Opportunity)
            .where(
                col(tables.Opportunity.id) == opportunity_id,
                col(tables.Opportunity.status) == OpportunityStatus.OPEN.value,
            )
            .values(status=OpportunityStatus(status).value)
        )
        return result.rowcount == 1

    async def change_opportunity_status(
        self, opportunity_id: int, status: OpportunityStatus
    ) -> Optional[Opportunity]:
        async with self._session() as session:
            if not await self._leave_open(session, opportunity_id, status):
                row = await session.get(tables.Opportunity, opportunity_id)
                if not row:
                    return None
                raise InvalidState(f"Opportunity is already {row.status}")
            await session.commit()
            row = await session.get(tables.Opportunity, opportunity_id)
            return _to_domain(Opportunity, row)

    # applications

    async def list_applications(
        self,
        opportunity_id: Optional[int] = None,
        user_id: Optional[int] = None,
    ) -> list[Application]:
        stmt = select(tables.Application)
        if opportunity_id is not None:
            stmt = stmt.where(tables.Application.opportunity_id == opportunity_id)
        if user_id is not None:
            stmt = stmt.where(tables.Application.user_id == user_id)
        stmt = stmt.order_by(col(tables.Application.created_at).desc(), col(tables.Application.id).desc())

        async with self._session() as session:
            result = await session.exec(stmt)
            return [_to_domain(Application, row) for row in result.all()]

    async def create_application(self, data: ApplicationCreate) -> Application:
        row = tables.Application(**data.model_dump(), created_at=utcnow())
        row = await self._insert(row, conflict="You have already applied to this opportunity")
        return _to_domain(Application, row)

    async def get_successful_application(self, opportunity_id: int) -> Optional[SuccessfulApplication]:
        async with self._session() as session:
            row = await session.get(tables.SuccessfulApplication, opportunity_id)
            return _to_domain(SuccessfulApplication, row) if row else None

    async def accept_application(self, opportunity_id: int, user_id: int) -> SuccessfulApplication:
        conflict = "An application has already been accepted for this opportunity"
        async with self._session(conflict=conflict) as session:
            if not await self._leave_open(session, opportunity_id, OpportunityStatus.FILLED):
                row = await session.get(tables.Opportunity, opportunity_id)
                if not row:
                    raise NotFound("Opportunity not found")
                if await session.get(tables.SuccessfulApplication, opportunity_id):
                    raise Conflict(conflict)
                raise InvalidState(f"Opportunity is already {row.status}")

            accepted = tables.SuccessfulApplication(
                opportunity_id=opportunity_id,
                user_id=user_id,
                accepted_at=utcnow(),
            )
            session.add(accepted)
            # the Filled status and the accepted row land in the same commit
            await session.commit()
            await session.refresh(accepted)
            return _to_domain(SuccessfulApplication, accepted)

    # learning areas

    async def list_learning_areas(self) -> list[LearningArea]:
        async with self._session() as session:
            result = await session.exec(select(tables.LearningArea).order_by(tables.LearningArea.name))
            return [_to_domain(LearningArea, row) for row in result.all()]

    async def create_learning_area(self, data: LearningAreaCreate) -> LearningArea:
        row = tables.LearningArea(name=data.name)
        row = await self._insert(row, conflict=f"Learning area {data.name!r} already exists")
        return _to_domain(LearningArea, row)

    async def link_learning_area_to_opportunity(
        self, opportunity_id: int, learning_area_id: int
    ) -> OpportunityLearningArea:
        row = tables.OpportunityLearningArea(opportunity_id=opportunity_id, learning_area_id=learning_area_id)
        row = await self._insert(row, conflict="Learning area is already linked to this opportunity")
        return _to_domain(OpportunityLearningArea, row)

    async def list_learning_areas_for_opportunity(self, opportunity_id: int) -> list[LearningArea]:
        stmt = (
            select(tables.LearningArea)
            .join(
                tables.OpportunityLearningArea,
                tables.OpportunityLearningArea.learning_area_id == tables.LearningArea.id,
            )
            .where(tables.OpportunityLearningArea.opportunity_id == opportunity_id)
            .order_by(tables.LearningArea.name)
        )
        async with self._session() as session:
            result = await session.exec(stmt)
            return [_to_domain(LearningArea, row) for row in result.all()]

    async def set_opportunity_learning_areas(
        self, opportunity_id: int, learning_area_ids: Iterable[int]
    ) -> list[LearningArea]:
        async with self._session() as session:
            await self._replace_links(session, opportunity_id, learning_area_ids)
            await session.commit()
        return await self.list_learning_areas_for_opportunity(opportunity_id)

    async def _replace_links(
        self, session: AsyncSession, opportunity_id: int, learning_area_ids: Iterable[int]
    ) -> None:
        result = await session.exec(
            select(tables.OpportunityLearningArea).where(
                tables.OpportunityLearningArea.opportunity_id == opportunity_id
            )
        )
        for link in result.all():
            await session.delete(link)
        await session.flush()
        session.add_all(
            tables.OpportunityLearningArea(opportunity_id=opportunity_id, learning_area_id=area_id)
            for area_id in dict.fromkeys(learning_area_ids)
        )
