"""Status poller tests: pure reads, owner scoping, idempotent terminal views."""

import pytest

from conftest import FakeCompletion, FakeIllustrator, story_json
from storygem.common.errors import JobNotFoundError
from storygem.jobs import Job, JobStatus, StatusPoller


@pytest.fixture
def poller(store):
    return StatusPoller(store)


async def test_pending_job_has_no_results(poller, pending_job):
    view = await poller.get_status(pending_job.id, "parent-1")

    assert view.to_dict() == {
        "job_id": pending_job.id,
        "status": "pending",
        "error_summary": None,
        "artifact_url": None,
    }


async def test_terminal_status_is_stable_and_read_only(
    poller, store, make_orchestrator, pending_job
):
    await make_orchestrator(FakeCompletion(story_json(5)), FakeIllustrator()).run(pending_job.id)
    writes_before = len(store.history[pending_job.id])

    views = [await poller.get_status(pending_job.id, "parent-1") for _ in range(3)]

    assert all(view == views[0] for view in views)
    assert views[0].status is JobStatus.COMPLETE
    assert views[0].artifact_url.endswith(f"{pending_job.id}.pdf")
    assert len(store.history[pending_job.id]) == writes_before


async def test_story_view_exposes_pages_only_when_complete(
    poller, make_orchestrator, pending_job
):
    before = await poller.get_story(pending_job.id, "parent-1")
    assert before.pages == ()
    assert before.title == "Lily's Bedtime Story"

    await make_orchestrator(FakeCompletion(story_json(5)), FakeIllustrator()).run(pending_job.id)
    after = (await poller.get_story(pending_job.id, "parent-1")).to_dict()

    assert after["status"] == "complete"
    assert [page["page_number"] for page in after["pages"]] == [1, 2, 3, 4, 5]
    assert after["error_summary"] is None


async def test_failed_job_exposes_summary(poller, make_orchestrator, pending_job):
    await make_orchestrator(FakeCompletion("not json"), FakeIllustrator()).run(pending_job.id)

    view = await poller.get_status(pending_job.id, "parent-1")

    assert view.status is JobStatus.FAILED
    assert view.error_summary
    assert view.artifact_url is None


async def test_foreign_job_looks_missing(poller, pending_job):
    with pytest.raises(JobNotFoundError):
        await poller.get_status(pending_job.id, "someone-else")
    with pytest.raises(JobNotFoundError):
        await poller.get_story(pending_job.id, "someone-else")


async def test_list_jobs_is_scoped_to_owner(poller, pending_job):
    mine = await poller.list_jobs("parent-1")

    assert [summary.job_id for summary in mine] == [pending_job.id]
    assert mine[0].to_dict()["title"] == "Lily's Bedtime Story"
    assert await poller.list_jobs("someone-else") == []


async def test_published_sample_is_visible_to_anyone(poller, store, make_orchestrator, pending_job):
    await make_orchestrator(FakeCompletion(story_json(5)), FakeIllustrator()).run(pending_job.id)
    await store.update(pending_job.id, Job.publish_as_sample)

    anonymous = await poller.get_story(pending_job.id, None)
    stranger = await poller.get_story(pending_job.id, "someone-else")

    assert anonymous.is_free is True
    assert len(anonymous.pages) == 5
    assert stranger == anonymous
    assert [summary.job_id for summary in await poller.list_samples()] == [pending_job.id]
    assert await poller.list_jobs("parent-1") == []
    with pytest.raises(JobNotFoundError):
        await poller.get_status(pending_job.id, "someone-else")


async def test_private_story_is_hidden_from_anonymous_readers(poller, pending_job):
    with pytest.raises(JobNotFoundError):
        await poller.get_story(pending_job.id, None)
    assert await poller.list_samples() == []
