"""Dispatcher tests: one active run per job, outcomes only via the store."""

import asyncio

import pytest

from conftest import FakeCompletion, FakeIllustrator, story_json
from storygem.common.errors import JobAlreadyRunningError
from storygem.jobs import JobStatus
from storygem.pipeline import JobDispatcher


async def test_dispatch_runs_job_in_background(make_orchestrator, store, pending_job):
    dispatcher = JobDispatcher(make_orchestrator(FakeCompletion(story_json(5)), FakeIllustrator()).run)

    dispatcher.dispatch(pending_job.id)
    assert dispatcher.is_running(pending_job.id)

    await dispatcher.drain()

    assert not dispatcher.is_running(pending_job.id)
    assert (await store.get(pending_job.id)).status is JobStatus.COMPLETE


async def test_second_dispatch_while_running_is_refused():
    release = asyncio.Event()
    runs = []

    async def runner(job_id):
        runs.append(job_id)
        await release.wait()

    dispatcher = JobDispatcher(runner)
    dispatcher.dispatch("job-1")

    with pytest.raises(JobAlreadyRunningError):
        dispatcher.dispatch("job-1")

    release.set()
    await dispatcher.drain()
    assert runs == ["job-1"]
    assert dispatcher.active_job_ids == frozenset()


async def test_runner_errors_are_logged_not_raised(caplog):
    async def runner(job_id):
        raise RuntimeError("store unreachable")

    dispatcher = JobDispatcher(runner)
    dispatcher.dispatch("job-9")
    await dispatcher.drain()

    assert "job-9 run ended with an unhandled error" in caplog.text
    assert not dispatcher.is_running("job-9")
