import hmac
from typing import Callable, Generator, Optional

import dns.resolver
from fastapi import Header, HTTPException, status

from app.config import settings
from app.db.session import SessionLocal
from app.services.render_domain import RenderDomainService


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def require_service_token(x_service_token: Optional[str] = Header(default=None)) -> None:
    """Dependency: internal ops endpoints require the shared service token."""
    expected = settings.SERVICE_TOKEN
    if not expected or not x_service_token or not hmac.compare_digest(x_service_token, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid service token")


def get_render_service_factory() -> Callable[[], RenderDomainService]:
    return RenderDomainService


def get_dns_resolver() -> dns.resolver.Resolver:
    return dns.resolver.Resolver()
