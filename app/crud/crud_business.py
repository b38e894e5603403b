from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy.orm import Session
from app.models.business import (
    Business,
    HOST_TYPE_CUSTOM_DOMAIN,
    STATUS_CNAME_MONITORING,
    check_interval,
    max_check_attempts,
)


def get(db: Session, business_id: int) -> Optional[Business]:
    return db.query(Business).filter(Business.id == business_id).first()


def save(db: Session, db_obj: Business) -> Business:
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj


def due_for_monitoring(db: Session, now: Optional[datetime] = None) -> List[Business]:
    """Eligible custom-domain businesses whose last write is older than the poll interval."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - check_interval()
    return (
        db.query(Business)
        .filter(
            Business.status == STATUS_CNAME_MONITORING,
            Business.cname_monitoring_active == True,  # noqa: E712
            Business.cname_check_attempts < max_check_attempts(),
            Business.host_type == HOST_TYPE_CUSTOM_DOMAIN,
            Business.updated_at <= cutoff,
        )
        .order_by(Business.id)
        .all()
    )
