"""
Job scheduling seam.

Job logic never talks to Celery directly: it asks the current scheduler to
run a named task, optionally after a delay. Production uses CeleryScheduler;
tests install a recording scheduler through `set_scheduler`.
"""
import logging
from datetime import timedelta
from typing import Any, Optional, Protocol

logger = logging.getLogger("bizdomains.scheduler")

# Task names
DOMAIN_MONITORING_TASK = "domains.monitor"
MONITOR_ALL_PENDING_TASK = "domains.monitor_all_pending"
CERTIFICATE_RETRY_TASK = "domains.certificate_propagation_retry"
REBUILD_CONTINUE_TASK = "domains.rebuild_continue"
RENDER_VERIFICATION_TASK = "domains.render_verification"


class Scheduler(Protocol):
    def schedule(self, task_name: str, *args: Any, delay: Optional[timedelta] = None) -> None:
        ...


class CeleryScheduler:
    def schedule(self, task_name: str, *args: Any, delay: Optional[timedelta] = None) -> None:
        from app.celery_app import celery_app

        countdown = delay.total_seconds() if delay else None
        logger.debug("Enqueue %s%r (countdown=%s)", task_name, args, countdown)
        celery_app.send_task(task_name, args=list(args), countdown=countdown)


_scheduler: Scheduler = CeleryScheduler()


def get_scheduler() -> Scheduler:
    return _scheduler


def set_scheduler(scheduler: Scheduler) -> Scheduler:
    """Install a scheduler and return the previous one."""
    global _scheduler
    previous, _scheduler = _scheduler, scheduler
    return previous


WWW_VERIFICATION_OFFSET = timedelta(seconds=30)


def schedule_dual_verification(scheduler: Scheduler, business, tag: str) -> None:
    """Verify apex now and www 30s later; the provider races when both verify at once."""
    try:
        scheduler.schedule(RENDER_VERIFICATION_TASK, business.apex_domain)
        scheduler.schedule(
            RENDER_VERIFICATION_TASK, business.www_domain, delay=WWW_VERIFICATION_OFFSET,
        )
    except Exception as e:
        logger.error("[%s] Failed to schedule verification: %s", tag, e)
