"""Tests for the inzikt CLI."""

from unittest.mock import patch

from click.testing import CliRunner

from inzikt.cli.main import cli
from inzikt.core.scheduler import JobRunResult, TickResult
from inzikt.models.schedule import ExecutionStatus


def _run_with(result):
    async def _fake(fn):
        return result

    return patch("inzikt.cli.main._with_store", new=_fake)


def test_tick_nothing_due():
    with _run_with(TickResult()):
        result = CliRunner().invoke(cli, ["tick"])
    assert result.exit_code == 0
    assert "No jobs due" in result.output


def test_tick_prints_table():
    tick = TickResult(
        jobs_run=2,
        results=[
            JobRunResult("job-a", "exec-a", ExecutionStatus.COMPLETED, result={"ok": True}),
            JobRunResult("job-b", "exec-b", ExecutionStatus.FAILED, error="boom"),
        ],
    )
    with _run_with(tick):
        result = CliRunner().invoke(cli, ["tick"])
    assert result.exit_code == 0
    assert "Ran 2 job(s)" in result.output
    assert "job-a" in result.output
    assert "boom" in result.output


def test_run_job_success():
    outcome = JobRunResult("job-a", "exec-a", ExecutionStatus.COMPLETED, result={"pruned": 3})
    with _run_with(outcome):
        result = CliRunner().invoke(cli, ["run-job", "job-a"])
    assert result.exit_code == 0
    assert "exec-a" in result.output


def test_run_job_failure_exits_nonzero():
    outcome = JobRunResult("job-a", "exec-a", ExecutionStatus.FAILED, error="boom")
    with _run_with(outcome):
        result = CliRunner().invoke(cli, ["run-job", "job-a"])
    assert result.exit_code == 1
    assert "boom" in result.output


def test_run_job_not_found():
    from inzikt.core.errors import JobNotFoundError

    async def _missing(fn):
        raise JobNotFoundError("Scheduled job nope not found")

    with patch("inzikt.cli.main._with_store", new=_missing):
        result = CliRunner().invoke(cli, ["run-job", "nope"])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_seed_default_jobs(store):
    async def _with_memory_store(fn):
        return await fn(store)

    with patch("inzikt.cli.main._with_store", new=_with_memory_store):
        result = CliRunner().invoke(cli, ["seed-default-jobs", "--user-id", "u1", "--provider", "zendesk"])
        again = CliRunner().invoke(cli, ["seed-default-jobs"])

    assert result.exit_code == 0
    assert "automated-import:zendesk" in result.output
    assert "already exist" in again.output
