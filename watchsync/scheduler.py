"""
Scheduled reconciliation cycles.

One interval job per registered channel. A ChannelJobs runner owned by the
scheduler carries each channel's ExecutionBudget from run to run, so a
channel never runs more than SYNC_RUNS_PER_HOUR cycles in a clock hour,
however often the scheduler fires it. The budgets go away with the
scheduler on stop.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from watchsync.core.config import get_settings
from watchsync.services.reconciliation.orchestrator import ReconciliationOrchestrator
from watchsync.services.reconciliation.types import ExecutionBudget

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None
channel_jobs: Optional["ChannelJobs"] = None


class ChannelJobs:
    """Runs scheduled cycles for one orchestrator and keeps the per-channel budgets."""

    def __init__(self, orchestrator: ReconciliationOrchestrator):
        self.orchestrator = orchestrator
        self.budgets: Dict[str, ExecutionBudget] = {}

    async def run_channel_task(self, channel: str) -> None:
        """Task to run one reconciliation cycle for a channel"""
        budget = self.budgets.get(channel, ExecutionBudget())
        try:
            summary = await self.orchestrator.run_cycle(channel, budget=budget)
            if summary.budget is not None:
                self.budgets[channel] = summary.budget
            logger.info(f"Scheduled cycle for {channel} finished: {summary.outcome.value}")
        except Exception as e:
            logger.exception(f"Error in scheduled cycle for {channel}: {str(e)}")


def job_listener(event):
    """Listen to job events for logging"""
    if event.exception:
        logger.error(f"Job {event.job_id} crashed: {event.exception}")
    else:
        logger.debug(f"Job {event.job_id} executed successfully at {datetime.now()}")


def create_scheduler(orchestrator: ReconciliationOrchestrator) -> AsyncIOScheduler:
    """Create and configure the scheduler"""
    global scheduler, channel_jobs

    if scheduler is not None:
        return scheduler

    settings = get_settings()
    scheduler = AsyncIOScheduler()
    scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
    channel_jobs = ChannelJobs(orchestrator)

    runs_per_hour = max(1, settings.SYNC_RUNS_PER_HOUR)
    interval_minutes = max(1, 60 // runs_per_hour)

    for channel in orchestrator.channels:
        scheduler.add_job(
            channel_jobs.run_channel_task,
            IntervalTrigger(minutes=interval_minutes),
            args=[channel],
            id=f"sync_{channel}",
            name=f"Sync {channel}",
            replace_existing=True,
            max_instances=1,  # Only one cycle per channel at a time
            coalesce=True,
            misfire_grace_time=interval_minutes * 60,
        )
        logger.info(f"Scheduled {channel} sync every {interval_minutes} minutes")

    if not orchestrator.channels:
        logger.info("No channels configured; scheduler has no jobs")

    return scheduler


async def start_scheduler(orchestrator: ReconciliationOrchestrator) -> AsyncIOScheduler:
    """Start the scheduler"""
    sched = create_scheduler(orchestrator)

    if not sched.running:
        sched.start()
        logger.info("Scheduler started successfully")
        for job in sched.get_jobs():
            logger.info(f"  - {job.name}: {job.trigger}")
    return sched


async def stop_scheduler():
    """Stop the scheduler gracefully"""
    global scheduler, channel_jobs

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped successfully")
    scheduler = None
    channel_jobs = None


def get_scheduler_status() -> dict:
    """Get current scheduler status and job information"""
    if scheduler is None:
        return {"status": "not_initialized", "jobs": []}

    jobs_info = []
    for job in scheduler.get_jobs():
        jobs_info.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger),
        })

    return {
        "status": "running" if scheduler.running else "stopped",
        "jobs": jobs_info,
    }
