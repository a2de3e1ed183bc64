import asyncio

import pytest

from app.services.pipeline.jobs import JobRunner

pytestmark = pytest.mark.asyncio


async def test_submit_returns_immediately_and_wait_returns_result():
    runner = JobRunner()
    gate = asyncio.Event()

    async def work():
        await gate.wait()
        return 42

    job = runner.submit("answer", work())
    assert not job.done()
    assert len(runner) == 1

    gate.set()
    assert await job.wait(timeout=1) == 42
    await asyncio.sleep(0)
    assert len(runner) == 0


async def test_crashed_job_is_unregistered_and_reraises_on_wait():
    runner = JobRunner()

    async def boom():
        raise RuntimeError("provider exploded")

    job = runner.submit("boom", boom())
    with pytest.raises(RuntimeError):
        await job.wait(timeout=1)
    await asyncio.sleep(0)

    assert isinstance(job.exception(), RuntimeError)
    assert runner.pending == []


async def test_drain_waits_for_jobs_submitted_by_jobs():
    runner = JobRunner()
    finished = []

    async def child():
        await asyncio.sleep(0.01)
        finished.append("child")

    async def parent():
        runner.submit("child", child())
        finished.append("parent")

    runner.submit("parent", parent())
    await runner.drain(timeout=1)

    assert finished == ["parent", "child"]
    assert len(runner) == 0


async def test_cancel_all():
    runner = JobRunner()

    async def forever():
        await asyncio.sleep(60)

    job = runner.submit("forever", forever())
    await runner.cancel_all()

    assert job.done()
    assert job.exception() is None
