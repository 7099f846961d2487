"""
Background Job Scheduler

Runs periodic jobs with APScheduler's AsyncIOScheduler inside the API process.

Design Principles:
- Jobs are idempotent (safe to run multiple times)
- Each job run uses its own database session and transactions
- Failed runs are logged but don't crash the scheduler
- Jobs can be triggered manually for testing (debug endpoints)

Usage:
    from admission_api.core.scheduler import register_job, start_scheduler, stop_scheduler

    register_job("my_job", my_job, IntervalTrigger(minutes=1))

    # In FastAPI lifespan:
    async def lifespan(app):
        await start_scheduler()
        yield
        await stop_scheduler()
"""

import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Coroutine[Any, Any, Any]]


@dataclass
class RegisteredJob:
    """A job known to the registry, scheduled or not."""

    job_id: str
    func: JobFunc
    trigger: BaseTrigger


# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None

# Job registry: jobs registered before start are added when the scheduler starts
_job_registry: dict[str, RegisteredJob] = {}


class SchedulerConfig:
    """Configuration for the background scheduler."""

    TIMEZONE = "UTC"

    JOB_DEFAULTS = {
        "coalesce": True,  # Combine missed executions into one
        "max_instances": 1,  # Never overlap runs of the same job
        "misfire_grace_time": 60 * 5,
    }


def _job_listener(event: JobExecutionEvent) -> None:
    """Log the outcome of every scheduled run."""
    if event.exception:
        logger.error(
            f"Job {event.job_id} failed with exception: {event.exception}",
            exc_info=event.exception,
        )
    else:
        logger.debug(f"Job {event.job_id} executed successfully")


def _add_to_scheduler(job: RegisteredJob) -> None:
    _scheduler.add_job(job.func, trigger=job.trigger, id=job.job_id, replace_existing=True)
    logger.info(f"Scheduled job: {job.job_id} ({job.trigger})")


def get_scheduler() -> AsyncIOScheduler | None:
    """Get the global scheduler instance, or None if not started."""
    return _scheduler


async def start_scheduler() -> AsyncIOScheduler:
    """
    Create and start the scheduler, adding every registered job.

    Returns:
        The started scheduler instance
    """
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Scheduler already running, returning existing instance")
        return _scheduler

    logger.info("Initializing background job scheduler...")

    _scheduler = AsyncIOScheduler(
        timezone=SchedulerConfig.TIMEZONE,
        job_defaults=SchedulerConfig.JOB_DEFAULTS,
    )
    _scheduler.add_listener(_job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    for job in _job_registry.values():
        _add_to_scheduler(job)

    _scheduler.start()

    logger.info(f"Background job scheduler started with {len(_job_registry)} job(s)")
    return _scheduler


async def stop_scheduler() -> None:
    """Stop the scheduler, waiting for running jobs to finish."""
    global _scheduler

    if _scheduler is None or not _scheduler.running:
        logger.debug("Scheduler not running, nothing to stop")
        return

    logger.info("Stopping background job scheduler...")
    _scheduler.shutdown(wait=True)
    _scheduler = None
    logger.info("Background job scheduler stopped")


def register_job(job_id: str, func: JobFunc, trigger: BaseTrigger) -> None:
    """
    Register a job.

    Registered before start, the job is added when the scheduler starts;
    registered after, it is added immediately.

    Example:
        register_job(
            job_id="admissions_dispatch_events",
            func=dispatch_admission_events,
            trigger=IntervalTrigger(seconds=60),
        )
    """
    job = RegisteredJob(job_id=job_id, func=func, trigger=trigger)
    _job_registry[job_id] = job

    if _scheduler is not None:
        _add_to_scheduler(job)
    else:
        logger.debug(f"Registered job {job_id}, will be scheduled on start")


async def trigger_job_manually(job_id: str) -> dict[str, Any]:
    """
    Run a registered job now, outside the schedule.

    Returns:
        Dict with job_id, status ("success" or "error"), executed_at, and
        error (on failure) or result (on success)

    Raises:
        ValueError: If job_id is not in the registry
    """
    if job_id not in _job_registry:
        raise ValueError(
            f"Job {job_id} not found in registry. Available jobs: {list(_job_registry.keys())}"
        )

    executed_at = datetime.now(UTC)
    logger.info(f"Manually triggering job: {job_id}")

    try:
        result = await _job_registry[job_id].func()
    except Exception as e:
        logger.error(f"Manual execution of job {job_id} failed: {e}", exc_info=True)
        return {
            "job_id": job_id,
            "status": "error",
            "executed_at": executed_at.isoformat(),
            "error": str(e),
        }

    logger.info(f"Manual execution of job {job_id} completed successfully")
    return {
        "job_id": job_id,
        "status": "success",
        "executed_at": executed_at.isoformat(),
        "result": result,
    }


def list_registered_jobs() -> list[dict[str, Any]]:
    """
    List registered jobs with their schedule state.

    Returns:
        One dict per job: job_id, trigger, and next_run_time / is_paused
        once the scheduler is running
    """
    jobs = []

    for job_id, job in _job_registry.items():
        job_info: dict[str, Any] = {"job_id": job_id, "trigger": str(job.trigger)}

        if _scheduler is not None:
            scheduled_job = _scheduler.get_job(job_id)
            next_run_time = scheduled_job.next_run_time if scheduled_job else None
            job_info["next_run_time"] = next_run_time.isoformat() if next_run_time else None
            job_info["is_paused"] = next_run_time is None

        jobs.append(job_info)

    return jobs


def pause_job(job_id: str) -> bool:
    """Pause a scheduled job. Returns False if the job is not scheduled."""
    if _scheduler is None or _scheduler.get_job(job_id) is None:
        logger.warning(f"Job not found for pausing: {job_id}")
        return False

    _scheduler.pause_job(job_id)
    logger.info(f"Paused job: {job_id}")
    return True


def resume_job(job_id: str) -> bool:
    """Resume a paused job. Returns False if the job is not scheduled."""
    if _scheduler is None or _scheduler.get_job(job_id) is None:
        logger.warning(f"Job not found for resuming: {job_id}")
        return False

    _scheduler.resume_job(job_id)
    logger.info(f"Resumed job: {job_id}")
    return True
