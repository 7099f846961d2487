"""
Unit tests for the background job scheduler registry.
"""

from unittest.mock import AsyncMock

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from admission_api.core import scheduler


async def dispatch_stub():
    return {"dispatched": 0}


@pytest.fixture(autouse=True)
def empty_registry(monkeypatch):
    """Each test starts with an empty registry and no running scheduler."""
    monkeypatch.setattr(scheduler, "_job_registry", {})
    monkeypatch.setattr(scheduler, "_scheduler", None)


def test_register_before_start_is_deferred():
    scheduler.register_job("relay", AsyncMock(), IntervalTrigger(seconds=60))

    jobs = scheduler.list_registered_jobs()

    assert [job["job_id"] for job in jobs] == ["relay"]
    assert "next_run_time" not in jobs[0]


@pytest.mark.asyncio
async def test_trigger_job_manually_success():
    job = AsyncMock(return_value={"dispatched": 3})
    scheduler.register_job("relay", job, IntervalTrigger(seconds=60))

    result = await scheduler.trigger_job_manually("relay")

    assert result["status"] == "success"
    assert result["result"] == {"dispatched": 3}
    job.assert_awaited_once()


@pytest.mark.asyncio
async def test_trigger_job_manually_failure_is_reported():
    job = AsyncMock(side_effect=RuntimeError("boom"))
    scheduler.register_job("relay", job, IntervalTrigger(seconds=60))

    result = await scheduler.trigger_job_manually("relay")

    assert result["status"] == "error"
    assert result["error"] == "boom"


@pytest.mark.asyncio
async def test_trigger_unknown_job():
    with pytest.raises(ValueError, match="not found"):
        await scheduler.trigger_job_manually("missing")


def test_pause_and_resume_without_scheduler():
    assert scheduler.pause_job("relay") is False
    assert scheduler.resume_job("relay") is False


@pytest.mark.asyncio
async def test_start_adds_jobs_registered_earlier():
    scheduler.register_job("relay", dispatch_stub, IntervalTrigger(seconds=60))

    started = await scheduler.start_scheduler()
    try:
        assert started.get_job("relay") is not None
        assert scheduler.pause_job("relay") is True
        assert scheduler.list_registered_jobs()[0]["is_paused"] is True
        assert scheduler.resume_job("relay") is True
    finally:
        await scheduler.stop_scheduler()

    assert scheduler.get_scheduler() is None
