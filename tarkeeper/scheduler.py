"""
APScheduler configuration for running backups on a schedule.

Used by `tarkeeper --cron EXPR`: the process stays in the foreground and
runs a complete backup (configuration, lock, archive, retention,
notification) each time the crontab expression fires.
"""

import signal
import logging
from typing import Optional

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.executors.pool import ThreadPoolExecutor

from tarkeeper.backup.executor import execute_backup


logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = None


def init_scheduler(cron_expr: str, config_path: Optional[str] = None,
                   source_dir: Optional[str] = None, backup_dir: Optional[str] = None):
    """
    Initialize and configure APScheduler.

    Args:
        cron_expr: Standard 5-field crontab expression
        config_path: Configuration file passed to every run
        source_dir: Source override passed to every run
        backup_dir: Destination override passed to every run

    Returns:
        The scheduler

    Raises:
        ValueError: If cron_expr is not a valid crontab expression
    """
    global scheduler

    if scheduler is not None:
        return scheduler

    trigger = CronTrigger.from_crontab(cron_expr)

    executors = {
        'default': ThreadPoolExecutor(max_workers=1)
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending runs into one
        'max_instances': 1,  # Only one backup at a time
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    scheduler = BlockingScheduler(
        executors=executors,
        job_defaults=job_defaults
    )

    scheduler.add_job(
        func=_execute_backup_wrapper,
        args=[config_path, source_dir, backup_dir],
        trigger=trigger,
        id='scheduled_backup',
        name=f"Backup ({cron_expr})",
        replace_existing=True
    )

    return scheduler


def start_scheduler():
    """
    Start the scheduler and block until interrupted.

    SIGTERM is treated like Ctrl-C: a backup in progress finishes (and
    releases its lock) before the process exits.
    """
    global scheduler

    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    signal.signal(signal.SIGTERM, _handle_sigterm)

    for job in scheduler.get_jobs():
        logger.info(f"Scheduled {job.name}")

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopping, waiting for a running backup to finish.")
    finally:
        stop_scheduler()


def stop_scheduler():
    """Stop the scheduler."""
    global scheduler

    if scheduler is not None:
        if scheduler.running:
            scheduler.shutdown(wait=True)
            logger.info("Scheduler stopped")
        scheduler = None


def _handle_sigterm(signum, frame):
    raise SystemExit(0)


def _execute_backup_wrapper(config_path: Optional[str], source_dir: Optional[str],
                            backup_dir: Optional[str]):
    """
    Run one backup from the scheduler.

    A failed run is reported through its own notification; the scheduler
    keeps going.
    """
    try:
        result = execute_backup(config_path, source_dir, backup_dir)
        logger.info(f"Scheduled backup finished with status: {result.outcome.value}")
    except Exception:
        logger.exception("Scheduled backup crashed")
