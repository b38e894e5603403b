import logging
from typing import Optional

from app.celery_app import celery_app
from app.db.session import SessionLocal
from app.logging_config import business_id_ctx
from app.tasks.domain_jobs import (
    CertificatePropagationRetryJob,
    DomainMonitoringJob,
    DomainRebuildContinueJob,
    RenderDomainVerificationJob,
)
from app.tasks.scheduler import (
    CERTIFICATE_RETRY_TASK,
    DOMAIN_MONITORING_TASK,
    MONITOR_ALL_PENDING_TASK,
    REBUILD_CONTINUE_TASK,
    RENDER_VERIFICATION_TASK,
)

logger = logging.getLogger(__name__)

RETRY_COUNTDOWN = 60  # seconds, doubled per retry


def _retry_or_fail(task, exc: Exception, tag: str, subject) -> dict:
    logger.error("[%s] Error for %s: %s", tag, subject, exc)
    if task.request.retries < task.max_retries:
        raise task.retry(exc=exc, countdown=RETRY_COUNTDOWN * (2 ** task.request.retries))
    return {"status": "failed", "error": str(exc)}


@celery_app.task(bind=True, name=DOMAIN_MONITORING_TASK, max_retries=3)
def domain_monitoring_job(self, business_id: int):
    """One monitoring poll; reschedules itself while the domain is still pending."""
    business_id_ctx.set(str(business_id))
    db = SessionLocal()
    try:
        result = DomainMonitoringJob(db).perform(business_id)
        return {"status": "completed", "business_id": business_id, "result": _summary(result)}
    except Exception as e:
        return _retry_or_fail(self, e, "DomainMonitoringJob", f"business {business_id}")
    finally:
        db.close()


@celery_app.task(name=MONITOR_ALL_PENDING_TASK)
def monitor_all_pending():
    db = SessionLocal()
    try:
        queued = DomainMonitoringJob.monitor_all_pending(db)
        return {"status": "completed", "queued": queued}
    finally:
        db.close()


@celery_app.task(bind=True, name=CERTIFICATE_RETRY_TASK, max_retries=3)
def certificate_propagation_retry_job(self, business_id: int, retry_count: int = 0):
    """One certificate-propagation retry; rebuilds the domain from retry 3 on."""
    business_id_ctx.set(str(business_id))
    db = SessionLocal()
    try:
        CertificatePropagationRetryJob(db).perform(business_id, retry_count)
        return {"status": "completed", "business_id": business_id, "retry_count": retry_count}
    except Exception as e:
        return _retry_or_fail(
            self, e, "CertificatePropagationRetryJob", f"business {business_id}",
        )
    finally:
        db.close()


@celery_app.task(bind=True, name=REBUILD_CONTINUE_TASK, max_retries=3)
def domain_rebuild_continue_job(self, business_id: int):
    business_id_ctx.set(str(business_id))
    db = SessionLocal()
    try:
        DomainRebuildContinueJob(db).perform(business_id)
        return {"status": "completed", "business_id": business_id}
    except Exception as e:
        return _retry_or_fail(self, e, "DomainRebuildContinueJob", f"business {business_id}")
    finally:
        db.close()


@celery_app.task(bind=True, name=RENDER_VERIFICATION_TASK, max_retries=2)
def render_domain_verification_job(self, domain_name: str):
    try:
        result = RenderDomainVerificationJob().perform(domain_name)
        return {"status": "completed", "domain": domain_name, "found": result is not None}
    except Exception as e:
        return _retry_or_fail(self, e, "RenderDomainVerificationJob", domain_name)


def _summary(result: Optional[dict]) -> Optional[dict]:
    # health/dns payloads hold datetimes; keep the JSON result small
    if not result:
        return None
    keys = ("success", "verified", "should_continue", "attempts", "max_attempts")
    return {k: result.get(k) for k in keys}
