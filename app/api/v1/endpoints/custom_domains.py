"""
Custom Domain Ops API

Internal endpoints for the custom-domain lifecycle:
  1. Setup: register at Render, queue verification, start monitoring
  2. Force activation
  3. Removal (with a preview) and temporary disable
  4. Live apex / www DNS check
"""
import logging
from typing import Any, Callable

import dns.resolver
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api import deps
from app.crud import crud_business
from app.services.cname_setup import CnameSetupService
from app.services.domain_removal import DomainRemovalService
from app.services.dual_domain_verifier import DualDomainVerifier
from app.services.render_domain import RenderDomainService

router = APIRouter(dependencies=[Depends(deps.require_service_token)])
logger = logging.getLogger("bizdomains.api")

_FAILURE_STATUS = {"ineligible": 409, "provider_error": 502}


def _get_business_or_404(db: Session, business_id: int):
    business = crud_business.get(db, business_id)
    if not business:
        raise HTTPException(status_code=404, detail="Business not found")
    return business


@router.get("/{business_id}/custom-domain")
def get_custom_domain_status(business_id: int, db: Session = Depends(deps.get_db)) -> Any:
    business = _get_business_or_404(db, business_id)
    return CnameSetupService(db, business).status()


@router.post("/{business_id}/custom-domain/setup")
def setup_custom_domain(
    business_id: int,
    db: Session = Depends(deps.get_db),
    render_factory: Callable[[], RenderDomainService] = Depends(deps.get_render_service_factory),
) -> Any:
    business = _get_business_or_404(db, business_id)
    result = CnameSetupService(db, business, render_service_factory=render_factory).start_setup()
    if not result["success"]:
        raise HTTPException(
            status_code=_FAILURE_STATUS.get(result["error_code"], 400),
            detail=result["error"],
        )
    return result


@router.post("/{business_id}/custom-domain/activate")
def activate_custom_domain(business_id: int, db: Session = Depends(deps.get_db)) -> Any:
    business = _get_business_or_404(db, business_id)
    if not business.is_custom_domain or not business.has_hostname:
        raise HTTPException(status_code=409, detail="Business does not use a custom domain")
    logger.info("Force activation requested for business %s", business.id)
    return CnameSetupService(db, business).force_activate()


@router.delete("/{business_id}/custom-domain")
def remove_custom_domain(
    business_id: int,
    db: Session = Depends(deps.get_db),
    render_factory: Callable[[], RenderDomainService] = Depends(deps.get_render_service_factory),
) -> Any:
    business = _get_business_or_404(db, business_id)
    if not business.is_custom_domain:
        raise HTTPException(status_code=409, detail="Business does not use a custom domain")
    return DomainRemovalService(db, business, render_service_factory=render_factory).remove_domain()


@router.post("/{business_id}/custom-domain/disable")
def disable_custom_domain(business_id: int, db: Session = Depends(deps.get_db)) -> Any:
    business = _get_business_or_404(db, business_id)
    return DomainRemovalService(db, business).disable_domain()


@router.get("/{business_id}/custom-domain/removal-preview")
def preview_custom_domain_removal(
    business_id: int,
    db: Session = Depends(deps.get_db),
    render_factory: Callable[[], RenderDomainService] = Depends(deps.get_render_service_factory),
) -> Any:
    business = _get_business_or_404(db, business_id)
    return DomainRemovalService(db, business, render_service_factory=render_factory).removal_preview()


@router.get("/{business_id}/custom-domain/dns")
def check_custom_domain_dns(
    business_id: int,
    db: Session = Depends(deps.get_db),
    resolver: dns.resolver.Resolver = Depends(deps.get_dns_resolver),
) -> Any:
    business = _get_business_or_404(db, business_id)
    if not business.is_custom_domain or not business.has_hostname:
        raise HTTPException(status_code=409, detail="Business does not use a custom domain")

    verifier = DualDomainVerifier(business.hostname, resolver=resolver)
    verification = verifier.verify_both_domains()
    return {
        "business_id": business.id,
        "verification": verification,
        "summary": verifier.status_summary(verification),
    }
