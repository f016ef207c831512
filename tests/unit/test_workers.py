"""Tests for inzikt.queue.workers."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from inzikt.models.job import BackgroundJobStatus, BackgroundJobType


@pytest.fixture
def worker_env(store, publisher):
    """Route the worker's session/store/publisher to the in-memory fakes."""
    session = MagicMock()
    session.rollback = AsyncMock()
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=session)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    store.session = session

    with (
        patch("inzikt.queue.workers.reset_engine") as mock_reset,
        patch("inzikt.db.session.get_session_factory", return_value=factory),
        patch("inzikt.core.store.JobStore", return_value=store),
        patch("inzikt.core.background.ProgressPublisher", return_value=publisher),
    ):
        yield mock_reset


async def test_runner_success_completes_job(worker_env, store):
    from inzikt.queue.workers import _run_background_job

    job = store.add_background(user_id="u1", job_type=BackgroundJobType.IMPORT, provider="zendesk")

    async def _runner(job, service):
        await service.update_progress(job.id, 1, total_tickets=2)
        return {"imported": 2}

    with patch("inzikt.queue.workers._get_runner", return_value=_runner):
        result = await _run_background_job(job.id)

    assert result == {"status": "completed", "job_id": job.id, "result": {"imported": 2}}
    assert store.background[job.id].status == BackgroundJobStatus.COMPLETED
    assert store.background[job.id].active_slot is None
    worker_env.assert_called_once()


async def test_runner_failure_marks_failed(worker_env, store):
    from inzikt.queue.workers import _run_background_job

    job = store.add_background(user_id="u1", job_type=BackgroundJobType.IMPORT)

    async def _runner(job, service):
        await service.update_progress(job.id, 3, total_tickets=10)
        raise ConnectionError("provider unreachable")

    with patch("inzikt.queue.workers._get_runner", return_value=_runner):
        result = await _run_background_job(job.id)

    assert result["status"] == "failed"
    assert result["error"] == "provider unreachable"
    row = store.background[job.id]
    assert row.status == BackgroundJobStatus.FAILED
    assert row.error_message == "provider unreachable"
    assert row.progress == 30


async def test_cancel_during_run_stops_quietly(worker_env, store):
    from inzikt.queue.workers import _run_background_job

    job = store.add_background(user_id="u1", job_type=BackgroundJobType.ANALYSIS)

    async def _runner(job, service):
        await service.cancel("u1", job_id=job.id)
        await service.token(job.id).check()
        return {"analyzed": 99}

    with patch("inzikt.queue.workers._get_runner", return_value=_runner):
        result = await _run_background_job(job.id)

    assert result == {"status": "canceled", "job_id": job.id}
    assert store.background[job.id].status == BackgroundJobStatus.CANCELED


async def test_missing_job(worker_env, store):
    from inzikt.queue.workers import _run_background_job

    assert await _run_background_job("gone") == {"status": "missing", "job_id": "gone"}


async def test_already_finished_job_is_skipped(worker_env, store):
    from inzikt.queue.workers import _run_background_job

    job = store.add_background(user_id="u1", status=BackgroundJobStatus.CANCELED)
    runner = AsyncMock()

    with patch("inzikt.queue.workers._get_runner", return_value=runner):
        result = await _run_background_job(job.id)

    assert result == {"status": "canceled", "job_id": job.id}
    runner.assert_not_called()


async def test_no_runner_for_type(worker_env, store):
    from inzikt.queue.workers import _run_background_job

    job = store.add_background(user_id="u1", job_type=BackgroundJobType.EXPORT)

    result = await _run_background_job(job.id)

    assert result["status"] == "failed"
    assert store.background[job.id].status == BackgroundJobStatus.FAILED
    assert store.background[job.id].error_message == "No runner for job type: export"


def test_get_runner_mapping():
    from inzikt.jobs.analysis import run_analysis
    from inzikt.jobs.imports import run_import
    from inzikt.queue.workers import _get_runner

    assert _get_runner(BackgroundJobType.IMPORT) is run_import
    assert _get_runner("analysis") is run_analysis
    assert _get_runner(BackgroundJobType.EXPORT) is None


def test_execute_background_job_task_runs_coroutine():
    from inzikt.queue.workers import execute_background_job

    with patch("inzikt.queue.workers._run_background_job", new=AsyncMock(return_value={"status": "completed"})):
        assert execute_background_job.run("j1") == {"status": "completed"}


def test_dispatcher_sends_task():
    from inzikt.core.tasks import EXECUTE_BACKGROUND_JOB, JobDispatcher

    job = MagicMock(id="j1", job_type=BackgroundJobType.IMPORT)
    with patch("inzikt.queue.celery_app.celery_app") as mock_app:
        mock_app.send_task.return_value.id = "celery-1"
        assert JobDispatcher().dispatch(job) == "celery-1"
    mock_app.send_task.assert_called_once_with(EXECUTE_BACKGROUND_JOB, args=["j1"], queue="jobs")
