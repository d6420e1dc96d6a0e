"""Concurrent claim attempts on one job: exactly one contributor wins."""

import asyncio
from types import SimpleNamespace

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.job import Job, JobStatus
from app.models.user import UserRole
from tests.conftest import auth, funded_job, make_user


@pytest.mark.asyncio
async def test_concurrent_claims_assign_exactly_one(
    client: AsyncClient,
    users: SimpleNamespace,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    job = await funded_job(client, users)
    contributors = [
        await make_user(session_factory, UserRole.CONTRIBUTOR) for _ in range(6)
    ]

    responses = await asyncio.gather(*(
        client.post(f"/jobs/{job['jobId']}/apply", headers=auth(c)) for c in contributors
    ))

    codes = sorted(r.status_code for r in responses)
    assert codes == [200] + [409] * (len(contributors) - 1)

    winner = next(r for r in responses if r.status_code == 200).json()["data"]["freelancerId"]
    assert winner in {str(c.user_id) for c in contributors}

    async with session_factory() as session:
        stored = (await session.execute(select(Job))).scalar_one()
    assert str(stored.freelancer_id) == winner
    assert stored.status == JobStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_losing_claim_reports_assignment(client: AsyncClient, users: SimpleNamespace) -> None:
    job = await funded_job(client, users)
    first, second = await asyncio.gather(
        client.post(f"/jobs/{job['jobId']}/apply", headers=auth(users.contributor)),
        client.post(f"/jobs/{job['jobId']}/apply", headers=auth(users.other_contributor)),
    )
    loser = second if first.status_code == 200 else first
    assert loser.status_code == 409
    assert loser.json()["success"] is False
