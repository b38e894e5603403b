"""
Domain Monitoring Ops API

Internal endpoints for operators:
  1. Read a business's custom-domain monitoring status
  2. Restart monitoring: resets the attempt counter and enqueues a poll
  3. Stop monitoring
  4. Kick off the certificate-propagation retry chain by hand
"""
import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api import deps
from app.crud import crud_business
from app.services.cname_setup import CnameSetupService
from app.services.domain_monitoring import DomainMonitoringService
from app.tasks.domain_jobs import DomainMonitoringJob
from app.tasks.scheduler import CERTIFICATE_RETRY_TASK, get_scheduler

router = APIRouter(dependencies=[Depends(deps.require_service_token)])
logger = logging.getLogger("bizdomains.api")


# ── Schemas ──

class MonitoringStatus(BaseModel):
    business_id: int
    domain: Optional[str] = None
    status: str
    monitoring_active: bool
    attempts: int
    max_attempts: int
    time_remaining: str
    can_check: bool
    last_updated: Optional[datetime] = None


class ActionResult(BaseModel):
    business_id: int
    message: str


# ── Helpers ──

def _get_business_or_404(db: Session, business_id: int):
    business = crud_business.get(db, business_id)
    if not business:
        raise HTTPException(status_code=404, detail="Business not found")
    return business


# ── Endpoints ──

@router.get("/{business_id}/domain-monitoring", response_model=MonitoringStatus)
def get_monitoring_status(business_id: int, db: Session = Depends(deps.get_db)) -> Any:
    business = _get_business_or_404(db, business_id)
    return DomainMonitoringService(db).monitoring_status(business)


@router.post("/{business_id}/domain-monitoring/start", response_model=ActionResult)
def start_monitoring(business_id: int, db: Session = Depends(deps.get_db)) -> Any:
    business = _get_business_or_404(db, business_id)
    result = CnameSetupService(db, business).restart_monitoring()
    if not result["success"]:
        raise HTTPException(status_code=409, detail=result["error"])

    logger.info("Domain monitoring started for business %s (%s)", business.id, business.hostname)
    return ActionResult(business_id=business.id, message="Monitoring started")


@router.post("/{business_id}/domain-monitoring/stop", response_model=ActionResult)
def stop_monitoring(business_id: int, db: Session = Depends(deps.get_db)) -> Any:
    _get_business_or_404(db, business_id)
    DomainMonitoringJob.stop_monitoring(db, business_id)
    return ActionResult(business_id=business_id, message="Monitoring stopped")


@router.post("/{business_id}/certificate-retry", response_model=ActionResult)
def start_certificate_retry(business_id: int, db: Session = Depends(deps.get_db)) -> Any:
    business = _get_business_or_404(db, business_id)
    if not business.is_custom_domain:
        raise HTTPException(status_code=409, detail="Business does not use a custom domain")
    get_scheduler().schedule(CERTIFICATE_RETRY_TASK, business.id, 0)

    logger.info("Certificate retry chain queued for business %s", business.id)
    return ActionResult(business_id=business.id, message="Certificate retry queued")
