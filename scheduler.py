"""
Background scheduler for ticket housekeeping.
Uses APScheduler to periodically move tickets off deactivated assignees.
"""
import atexit
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

import config

logger = logging.getLogger(__name__)


def guarded(job_func, name):
    """Wrap a job so a failing run is logged instead of killing the scheduler thread."""
    def run():
        try:
            result = job_func()
            logger.info('[Scheduler] %s finished: %s', name, result)
            return result
        except Exception:
            logger.exception('[Scheduler] %s failed', name)
            return None
    run.__name__ = getattr(job_func, '__name__', name)
    return run


class AutomationScheduler:
    """Manages background jobs for ticket reassignment."""

    def __init__(self):
        self.scheduler = BackgroundScheduler()
        self._started = False

    def start(self, reassign_func):
        """Start the scheduler with the reassignment job."""
        if self._started:
            return

        if not config.AUTO_REASSIGN_ENABLED:
            logger.info('[Scheduler] Auto-reassignment disabled (set AUTO_REASSIGN=true to enable)')
            return

        self.scheduler.add_job(
            func=guarded(reassign_func, 'Reassign tickets from inactive assignees'),
            trigger=IntervalTrigger(minutes=config.REASSIGN_INTERVAL_MINUTES),
            id='inactive_reassigner',
            name='Reassign tickets from inactive assignees',
            replace_existing=True
        )
        logger.info('[Scheduler] Reassignment every %d minutes', config.REASSIGN_INTERVAL_MINUTES)

        self.scheduler.start()
        self._started = True

        # Shut down scheduler when app exits
        atexit.register(self.shutdown)

    def shutdown(self):
        """Gracefully shut down the scheduler."""
        if self._started:
            self.scheduler.shutdown()
            self._started = False

    def get_jobs_status(self) -> list:
        """Get status of all scheduled jobs."""
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, 'next_run_time', None)
            jobs.append({
                'id': job.id,
                'name': job.name,
                'next_run': str(next_run) if next_run else 'paused'
            })
        return jobs


# Singleton instance
automation_scheduler = AutomationScheduler()
