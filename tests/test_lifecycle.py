from __future__ import annotations

import anyio
import pytest

from jobshadow.errors import Conflict, Forbidden, InvalidState, NotFound, ValidationFailure
from jobshadow.models.opportunity_model import ApplicationCreate, OpportunityCreate
from jobshadow.models.user_model import UserCreate
from jobshadow.schemas import DurationLimit, OpportunityFormat, OpportunityStatus
from jobshadow.seed_data import seed_reference_data
from jobshadow.services.lifecycle import LifecycleService
from jobshadow.services.opportunity_service import create_opportunity
from jobshadow.storage.memory import MemStorage
from jobshadow.storage.sql import SqlStorage


async def _people(storage, *emails):
    orgs = {o.name: o for o in await storage.list_organisations()}
    creator = await storage.create_user(
        UserCreate(email="host@example.com", name="Host", organisation_id=orgs["SEEK"].id)
    )
    others = [
        await storage.create_user(UserCreate(email=email, name=email.split("@")[0], organisation_id=orgs["Xero"].id))
        for email in emails
    ]
    return creator, others


async def _opportunity(storage, creator, title="Engineering leadership shadow"):
    return await create_opportunity(
        storage,
        OpportunityCreate(
            title=title,
            description="Shadow the engineering director for a day.",
            format=OpportunityFormat.HYBRID,
            duration_limit=DurationLimit.ONE_DAY,
            organisation_id=creator.organisation_id,
            created_by_user_id=creator.id,
        ),
    )


def test_closed_opportunity_rejects_apply_and_accept(run_with_storage):
    async def scenario(storage):
        lifecycle = LifecycleService(storage)
        creator, (applicant, latecomer) = await _people(storage, "u@example.com", "v@example.com")
        opp = await _opportunity(storage, creator)
        await lifecycle.apply(applicant.id, opp.id, "Interested")

        closed = await lifecycle.change_status(opp.id, OpportunityStatus.CLOSED)
        assert closed.status == OpportunityStatus.CLOSED

        with pytest.raises(InvalidState):
            await lifecycle.apply(latecomer.id, opp.id)
        with pytest.raises(InvalidState):
            await lifecycle.accept(opp.id, applicant.id)

        assert len(await storage.list_applications(opportunity_id=opp.id)) == 1
        assert await storage.get_successful_application(opp.id) is None

    run_with_storage(scenario)


def test_filled_opportunity_rejects_apply_and_accept(run_with_storage):
    async def scenario(storage):
        lifecycle = LifecycleService(storage)
        creator, (u, v) = await _people(storage, "u@example.com", "v@example.com")
        opp = await _opportunity(storage, creator)
        await lifecycle.apply(u.id, opp.id)
        await lifecycle.accept(opp.id, u.id)

        with pytest.raises(Conflict):
            await lifecycle.apply(v.id, opp.id)
        with pytest.raises(Conflict):
            await lifecycle.accept(opp.id, u.id)
        with pytest.raises(InvalidState):
            await lifecycle.change_status(opp.id, OpportunityStatus.CLOSED)

        assert [a.user_id for a in await storage.list_applications(opportunity_id=opp.id)] == [u.id]

    run_with_storage(scenario)


def test_second_application_from_same_user_is_rejected(run_with_storage):
    async def scenario(storage):
        lifecycle = LifecycleService(storage)
        creator, (u,) = await _people(storage, "u@example.com")
        opp = await _opportunity(storage, creator)

        first = await lifecycle.apply(u.id, opp.id, "Interested")
        assert first.message == "Interested"
        with pytest.raises(Conflict) as exc:
            await lifecycle.apply(u.id, opp.id, "Still interested")
        assert "already applied" in exc.value.message

        assert len(await storage.list_applications(opportunity_id=opp.id, user_id=u.id)) == 1

    run_with_storage(scenario)


def test_storage_constraint_rejects_duplicate_application(run_with_storage):
    async def scenario(storage):
        creator, (u,) = await _people(storage, "u@example.com")
        opp = await _opportunity(storage, creator)
        data = ApplicationCreate(user_id=u.id, opportunity_id=opp.id)

        await storage.create_application(data)
        with pytest.raises(Conflict):
            await storage.create_application(data)
        assert len(await storage.list_applications(opportunity_id=opp.id)) == 1

    run_with_storage(scenario)


def test_accept_fills_opportunity_once(run_with_storage):
    async def scenario(storage):
        lifecycle = LifecycleService(storage)
        creator, (u, v) = await _people(storage, "u@example.com", "v@example.com")
        opp = await _opportunity(storage, creator)
        await lifecycle.apply(u.id, opp.id)
        await lifecycle.apply(v.id, opp.id)

        accepted = await lifecycle.accept(opp.id, u.id, actor_id=creator.id)
        assert accepted.user_id == u.id
        assert (await storage.get_opportunity(opp.id)).status == OpportunityStatus.FILLED

        with pytest.raises(Conflict):
            await lifecycle.accept(opp.id, v.id)
        with pytest.raises(Conflict):
            await storage.accept_application(opp.id, v.id)

        detail = await storage.get_opportunity_by_id(opp.id)
        assert detail.successful_applicant.id == u.id
        assert detail.status == OpportunityStatus.FILLED

    run_with_storage(scenario)


def test_accept_requires_an_application_and_the_creator(run_with_storage):
    async def scenario(storage):
        lifecycle = LifecycleService(storage)
        creator, (u, v) = await _people(storage, "u@example.com", "v@example.com")
        opp = await _opportunity(storage, creator)
        await lifecycle.apply(u.id, opp.id)

        with pytest.raises(NotFound):
            await lifecycle.accept(opp.id, v.id)
        with pytest.raises(Forbidden):
            await lifecycle.accept(opp.id, u.id, actor_id=v.id)
        with pytest.raises(NotFound):
            await lifecycle.accept(opp.id + 100, u.id)

        assert (await storage.get_opportunity(opp.id)).status == OpportunityStatus.OPEN

    run_with_storage(scenario)


def test_apply_to_missing_opportunity_or_user(run_with_storage):
    async def scenario(storage):
        lifecycle = LifecycleService(storage)
        creator, (u,) = await _people(storage, "u@example.com")
        opp = await _opportunity(storage, creator)

        with pytest.raises(NotFound):
            await lifecycle.apply(u.id, opp.id + 100)
        with pytest.raises(NotFound):
            await lifecycle.apply(u.id + 100, opp.id)

    run_with_storage(scenario)


def test_change_status_rules(run_with_storage):
    async def scenario(storage):
        lifecycle = LifecycleService(storage)
        creator, (u,) = await _people(storage, "u@example.com")
        opp = await _opportunity(storage, creator)

        still_open = await lifecycle.change_status(opp.id, OpportunityStatus.OPEN)
        assert still_open.status == OpportunityStatus.OPEN
        with pytest.raises(Forbidden):
            await lifecycle.change_status(opp.id, OpportunityStatus.CLOSED, actor_id=u.id)

        filled = await lifecycle.change_status(opp.id, OpportunityStatus.FILLED, actor_id=creator.id)
        assert filled.status == OpportunityStatus.FILLED
        # direct fill does not record an accepted applicant
        assert await storage.get_successful_application(opp.id) is None

        unchanged = await lifecycle.change_status(opp.id, OpportunityStatus.FILLED)
        assert unchanged.status == OpportunityStatus.FILLED
        with pytest.raises(InvalidState):
            await lifecycle.change_status(opp.id, OpportunityStatus.CLOSED)

        other = await _opportunity(storage, creator, title="Agile at scale")
        await lifecycle.change_status(other.id, OpportunityStatus.CLOSED)
        with pytest.raises(ValidationFailure):
            await lifecycle.change_status(other.id, OpportunityStatus.OPEN)

    run_with_storage(scenario)


def test_creating_opportunity_requires_creator_organisation(run_with_storage):
    async def scenario(storage):
        orgs = await storage.list_organisations()
        newcomer = await storage.create_user(UserCreate(email="new@example.com", name="New"))
        with pytest.raises(ValidationFailure) as exc:
            await create_opportunity(
                storage,
                OpportunityCreate(
                    title="Sales leadership",
                    description="A day with the sales lead.",
                    format=OpportunityFormat.ONLINE,
                    duration_limit=DurationLimit.ONE_HOUR,
                    organisation_id=orgs[0].id,
                    created_by_user_id=newcomer.id,
                ),
            )
        assert exc.value.errors[0]["field"] == "createdByUserId"
        assert await storage.list_opportunity_rows() == []

    run_with_storage(scenario)


def test_concurrent_accepts_write_one_successful_application():
    async def main():
        storage = MemStorage()
        await storage.connect()
        await seed_reference_data(storage)
        lifecycle = LifecycleService(storage)
        creator, (u, v) = await _people(storage, "u@example.com", "v@example.com")
        opp = await _opportunity(storage, creator)
        await lifecycle.apply(u.id, opp.id)
        await lifecycle.apply(v.id, opp.id)

        outcomes = []

        async def attempt(user_id):
            try:
                outcomes.append(await lifecycle.accept(opp.id, user_id))
            except Conflict as exc:
                outcomes.append(exc)

        async with anyio.create_task_group() as tg:
            tg.start_soon(attempt, u.id)
            tg.start_soon(attempt, v.id)

        failures = [o for o in outcomes if isinstance(o, Conflict)]
        assert len(outcomes) == 2
        assert len(failures) == 1
        accepted = await storage.get_successful_application(opp.id)
        assert accepted is not None
        assert (await storage.get_opportunity(opp.id)).status == OpportunityStatus.FILLED

    anyio.run(main)


def test_concurrent_duplicate_applications_store_one_row():
    async def main():
        storage = MemStorage()
        await storage.connect()
        await seed_reference_data(storage)
        lifecycle = LifecycleService(storage)
        creator, (u,) = await _people(storage, "u@example.com")
        opp = await _opportunity(storage, creator)

        outcomes = []

        async def attempt():
            try:
                outcomes.append(await lifecycle.apply(u.id, opp.id))
            except Conflict as exc:
                outcomes.append(exc)

        async with anyio.create_task_group() as tg:
            tg.start_soon(attempt)
            tg.start_soon(attempt)

        assert sum(isinstance(o, Conflict) for o in outcomes) == 1
        assert len(await storage.list_applications(opportunity_id=opp.id)) == 1

    anyio.run(main)


def test_racing_accept_and_close_on_sqlite_leave_a_consistent_row(tmp_path):
    async def main():
        # a file database, so each session gets its own connection
        storage = SqlStorage(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
        await storage.connect()
        try:
            await seed_reference_data(storage)
            creator, (u,) = await _people(storage, "u@example.com")

            for i in range(20):
                opp = await _opportunity(storage, creator, title=f"Race {i}")
                await storage.create_application(ApplicationCreate(user_id=u.id, opportunity_id=opp.id))
                outcomes = []

                async def attempt(transition):
                    try:
                        outcomes.append(await transition())
                    except Conflict as exc:
                        outcomes.append(exc)

                async with anyio.create_task_group() as tg:
                    tg.start_soon(attempt, lambda: storage.accept_application(opp.id, u.id))
                    tg.start_soon(
                        attempt, lambda: storage.change_opportunity_status(opp.id, OpportunityStatus.CLOSED)
                    )

                assert sum(isinstance(o, Conflict) for o in outcomes) == 1
                status = (await storage.get_opportunity(opp.id)).status
                accepted = await storage.get_successful_application(opp.id)
                if accepted is None:
                    assert status == OpportunityStatus.CLOSED
                else:
                    assert status == OpportunityStatus.FILLED
        finally:
            await storage.close()

    anyio.run(main)


def test_storage_status_transitions_only_leave_open(run_with_storage):
    async def scenario(storage):
        creator, (u,) = await _people(storage, "u@example.com")
        opp = await _opportunity(storage, creator)
        await storage.create_application(ApplicationCreate(user_id=u.id, opportunity_id=opp.id))

        closed = await storage.change_opportunity_status(opp.id, OpportunityStatus.CLOSED)
        assert closed.status == OpportunityStatus.CLOSED

        with pytest.raises(InvalidState):
            await storage.accept_application(opp.id, u.id)
        with pytest.raises(InvalidState):
            await storage.change_opportunity_status(opp.id, OpportunityStatus.FILLED)
        assert await storage.change_opportunity_status(opp.id + 100, OpportunityStatus.CLOSED) is None
        with pytest.raises(NotFound):
            await storage.accept_application(opp.id + 100, u.id)

        assert (await storage.get_opportunity(opp.id)).status == OpportunityStatus.CLOSED
        assert await storage.get_successful_application(opp.id) is None

    run_with_storage(scenario)
